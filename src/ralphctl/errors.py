"""
Error types and exit codes for ralphctl.

Errors carry the process exit code the CLI should terminate with, so the
command layer can convert any RalphError into a terse Unix-style message.
"""

import sys
from enum import IntEnum
from typing import NoReturn


class ExitCode(IntEnum):
    """Process exit codes produced once a loop run terminates."""
    SUCCESS = 0
    ERROR = 1
    EXHAUSTED = 2
    BLOCKED = 3
    INCONCLUSIVE = 4
    INTERRUPTED = 130


class RalphError(RuntimeError):
    """Base class for errors surfaced to the operator."""

    exit_code: ExitCode = ExitCode.ERROR


class LaunchError(RalphError):
    """The agent executable could not be found or spawned."""

    def __init__(self, executable: str, reason: str):
        super().__init__(f"{executable}: {reason}")
        self.executable = executable
        self.reason = reason


class StreamError(RalphError):
    """An output channel of the agent failed while being drained."""

    def __init__(self, channel: str, cause: BaseException):
        super().__init__(f"failed reading agent {channel}: {cause}")
        self.channel = channel
        self.cause = cause


class ConfigError(RalphError):
    """The configuration file is unreadable or invalid."""


class WorkspaceError(RalphError):
    """Required workspace files are missing or unusable."""


def die(message: str, code: int = ExitCode.ERROR) -> NoReturn:
    """Print ``error: <message>`` to stderr and exit with ``code``."""
    print(f"error: {message}", file=sys.stderr)
    raise SystemExit(int(code))
