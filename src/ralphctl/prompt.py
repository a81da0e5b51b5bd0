"""
Workspace files and prompt loading.

The build protocol reads its prompt from PROMPT.md in the working
directory. The investigate protocol ships its prompt with the package and
copies it to REVERSE_PROMPT.md for reference.
"""

import logging
from pathlib import Path

from .errors import WorkspaceError
from .tasks import count_checkboxes

logger = logging.getLogger(__name__)

# Build protocol files
SPEC_FILE = "SPEC.md"
IMPLEMENTATION_PLAN_FILE = "IMPLEMENTATION_PLAN.md"
PROMPT_FILE = "PROMPT.md"

# Investigate protocol files
QUESTION_FILE = "QUESTION.md"
INVESTIGATION_FILE = "INVESTIGATION.md"
FINDINGS_FILE = "FINDINGS.md"
REVERSE_PROMPT_FILE = "REVERSE_PROMPT.md"

REQUIRED_FILES = (PROMPT_FILE, SPEC_FILE, IMPLEMENTATION_PLAN_FILE)

QUESTION_TEMPLATE = """\
# Question

<!-- Replace this with the question the investigation should answer. -->
"""


def _get_prompt_path(name: str) -> Path:
    """Get the path to a packaged prompt template."""
    return Path(__file__).parent / "prompts" / name


def validate_required_files(cwd: Path | None = None) -> None:
    """Raise WorkspaceError naming every missing build-protocol file."""
    base = cwd or Path.cwd()
    missing = [name for name in REQUIRED_FILES if not (base / name).exists()]
    if missing:
        raise WorkspaceError(f"missing required files: {', '.join(missing)}")


def read_prompt(cwd: Path | None = None) -> str:
    """Read PROMPT.md, rejecting a missing or blank file."""
    path = (cwd or Path.cwd()) / PROMPT_FILE
    if not path.is_file():
        raise WorkspaceError(f"{PROMPT_FILE} not found")
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise WorkspaceError(f"{PROMPT_FILE} is empty")
    return content


def write_question(cwd: Path, question: str) -> Path:
    """Write the investigation question to QUESTION.md."""
    path = cwd / QUESTION_FILE
    path.write_text(f"# Question\n\n{question.strip()}\n", encoding="utf-8")
    logger.info("Wrote question to %s", path)
    return path


def create_question_template(cwd: Path) -> Path:
    path = cwd / QUESTION_FILE
    path.write_text(QUESTION_TEMPLATE, encoding="utf-8")
    return path


def load_reverse_prompt() -> str:
    """Load the packaged investigate prompt.

    Raises:
        WorkspaceError: If the packaged template is missing.
    """
    path = _get_prompt_path("reverse.md")
    if not path.is_file():
        raise WorkspaceError(f"investigate prompt template not found at: {path}")
    return path.read_text(encoding="utf-8")


def write_reverse_prompt(cwd: Path) -> str:
    """Copy the investigate prompt into the workspace and return its text."""
    prompt = load_reverse_prompt()
    (cwd / REVERSE_PROMPT_FILE).write_text(prompt, encoding="utf-8")
    return prompt


def investigation_notes(cwd: Path) -> list[str]:
    """Names of the investigation files the agent has written so far."""
    return [name for name in (FINDINGS_FILE, INVESTIGATION_FILE) if (cwd / name).is_file()]


def task_progress(cwd: Path | None = None) -> str:
    """``X/Y tasks complete`` from IMPLEMENTATION_PLAN.md, or a fallback."""
    path = (cwd or Path.cwd()) / IMPLEMENTATION_PLAN_FILE
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return "task status unknown"
    return count_checkboxes(content).summary()
