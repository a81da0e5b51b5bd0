"""Shared fixtures: a scripted agent that runs short Python children."""

import io
import re
import sys

import pytest

from ralphctl.agent import AgentRunner


class ScriptedRunner(AgentRunner):
    """Agent whose iterations print canned output.

    Each launch consumes the next entry of ``outputs`` (the last one
    repeats). An entry is either stdout text or a ``(stdout, stderr)``
    tuple. ``sleep`` keeps the child alive after printing.
    """

    name = "scripted"
    executable = sys.executable

    def __init__(self, *outputs, exit_code: int = 0, sleep: float = 0.0):
        self.outputs = list(outputs) or [""]
        self.exit_code = exit_code
        self.sleep = sleep
        self.launches = 0
        self.models: list[str | None] = []

    def build_command(self, model=None):
        entry = self.outputs[min(self.launches, len(self.outputs) - 1)]
        self.launches += 1
        self.models.append(model)
        out, err = entry if isinstance(entry, tuple) else (entry, "")
        script = (
            "import sys, time\n"
            "sys.stdin.read()\n"
            f"sys.stdout.write({out!r}); sys.stdout.flush()\n"
            f"sys.stderr.write({err!r}); sys.stderr.flush()\n"
            f"time.sleep({self.sleep!r})\n"
            f"sys.exit({self.exit_code!r})\n"
        )
        return [sys.executable, "-c", script]


@pytest.fixture
def stdout() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def stderr() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def scripted():
    """Factory for ScriptedRunner instances."""
    return ScriptedRunner


LOG_SECTION_RE = re.compile(
    r"^=== Iteration (\d+) starting \((.+?)\) ===\n(.*?)--- end iteration \1 ---\n",
    re.MULTILINE | re.DOTALL,
)


@pytest.fixture
def log_sections():
    """Parse ralph.log text into ``(iteration, timestamp, output)`` tuples."""
    def parse(text):
        return [(int(n), stamp, body) for n, stamp, body in LOG_SECTION_RE.findall(text)]
    return parse
