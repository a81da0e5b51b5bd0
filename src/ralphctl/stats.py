"""
Loop statistics tracking.

Tracks iteration counts, timing and signal history across one loop run.
"""

import logging
import sys
import time
from dataclasses import dataclass, field
from typing import IO

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as ``1h 2m 3s`` / ``2m 3s`` / ``3s``."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


@dataclass
class LoopStats:
    """Track statistics across the loop."""
    start_time: float = field(default_factory=time.time)
    iterations_started: int = 0
    iterations_completed: int = 0
    nonzero_exits: int = 0
    signals: dict = field(default_factory=dict)
    iteration_seconds: list = field(default_factory=list)

    def record_iteration(self, signal_kind: str, duration: float, returncode: int | None) -> None:
        """Record one finished (not interrupted) iteration."""
        self.iterations_completed += 1
        self.signals[signal_kind] = self.signals.get(signal_kind, 0) + 1
        self.iteration_seconds.append(duration)
        if returncode not in (0, None):
            self.nonzero_exits += 1

    def elapsed_time(self) -> str:
        return format_duration(time.time() - self.start_time)

    def average_iteration(self) -> str:
        if not self.iteration_seconds:
            return "-"
        return format_duration(sum(self.iteration_seconds) / len(self.iteration_seconds))

    def print_summary(self, outcome: str, log_errors: list[str] | None = None, file: IO[str] | None = None) -> None:
        """Print the end-of-run summary."""
        out = file or sys.stderr
        signals = ", ".join(f"{k}={v}" for k, v in sorted(self.signals.items())) or "-"
        logger.info("Run finished: %s after %d iterations", outcome, self.iterations_completed)

        print(f"\n{'='*60}", file=out)
        print(f"Outcome:     {outcome}", file=out)
        print(f"Iterations:  {self.iterations_completed}", file=out)
        print(f"Elapsed:     {self.elapsed_time()} (avg {self.average_iteration()}/iteration)", file=out)
        print(f"Signals:     {signals}", file=out)
        if self.nonzero_exits:
            print(f"Agent exits: {plural(self.nonzero_exits, 'non-zero exit')}", file=out)
        if log_errors:
            print(f"Log errors:  {plural(len(log_errors), 'iteration')} not written", file=out)
            for message in log_errors:
                print(f"  - {message}", file=out)
        print(f"{'='*60}", file=out)
