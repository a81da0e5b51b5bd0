"""
Append-only iteration log (ralph.log).

Each iteration is written as a delimited section so the file can be split
back into per-iteration records by a human or a script.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .loop import IterationRecord

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "ralph.log"


def format_iteration_header(iteration: int) -> str:
    """Format: ``=== Iteration N starting ===``"""
    return f"=== Iteration {iteration} starting ==="


def format_record(iteration: int, started_at: datetime, output: str) -> str:
    """Render one log section, start delimiter to end delimiter."""
    body = output if output.endswith("\n") or not output else output + "\n"
    return (
        f"=== Iteration {iteration} starting ({started_at.isoformat()}) ===\n"
        f"{body}"
        f"--- end iteration {iteration} ---\n\n"
    )


class IterationLog:
    """Appends iteration records to a log file.

    Write failures never stop the loop. They are logged, collected in
    ``errors`` and reported at the end of the run.
    """

    def __init__(self, path: str | Path = DEFAULT_LOG_FILE):
        self.path = Path(path)
        self.errors: list[str] = []

    def append(self, record: "IterationRecord") -> bool:
        """Append one record. Returns False if the write failed."""
        text = format_record(record.iteration, record.started_at, record.output)
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            message = f"iteration {record.iteration}: {e}"
            logger.warning("Failed to write %s: %s", self.path, message)
            self.errors.append(message)
            return False
        return True

