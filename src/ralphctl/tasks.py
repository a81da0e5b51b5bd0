"""
Checkbox counting for IMPLEMENTATION_PLAN.md progress.
"""

import re
from dataclasses import dataclass

CHECKBOX_RE = re.compile(r"^\s*-\s*\[([ xX])\]", re.MULTILINE)

BAR_WIDTH = 12


@dataclass(frozen=True)
class TaskCount:
    """Completed (``- [x]``) and total (``- [ ]`` + ``- [x]``) tasks."""
    completed: int
    total: int

    def percentage(self) -> int:
        """Completion percentage, 0 when there are no tasks."""
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)

    def render_progress_bar(self) -> str:
        """Format: ``[████████░░░░] 67% (8/12 tasks)``"""
        filled = 0 if self.total == 0 else self.completed * BAR_WIDTH // self.total
        bar = "█" * filled + "░" * (BAR_WIDTH - filled)
        return f"[{bar}] {self.percentage()}% ({self.completed}/{self.total} tasks)"

    def summary(self) -> str:
        return f"{self.completed}/{self.total} tasks complete"


def count_checkboxes(content: str) -> TaskCount:
    """Count markdown checkboxes, flat (nested items weigh the same)."""
    completed = 0
    total = 0
    for match in CHECKBOX_RE.finditer(content):
        total += 1
        if match.group(1) in ("x", "X"):
            completed += 1
    return TaskCount(completed, total)
