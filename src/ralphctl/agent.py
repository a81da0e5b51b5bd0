"""
Agent runner abstraction for the iteration loop.

Provides a strategy pattern for launching one single-shot agent
invocation per iteration with different coding agents (Claude Code,
Codex CLI). The prompt is always delivered over stdin, which is closed
afterwards to signal end of input.
"""

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod

from .errors import LaunchError
from .interrupt import terminate_process_group

logger = logging.getLogger(__name__)


class AgentRunner(ABC):
    """Base class for agent execution backends."""

    name: str
    executable: str

    def check_available(self) -> bool:
        """Return True if this agent's CLI binary is on PATH."""
        return shutil.which(self.executable) is not None

    @abstractmethod
    def build_command(self, model: str | None = None) -> list[str]:
        """Return the argv for one non-interactive invocation.

        Args:
            model: Optional model selector forwarded to the agent
        """

    def launch(self, prompt: str, model: str | None = None) -> subprocess.Popen:
        """Start the agent and hand it the prompt.

        The child leads a new process group so an interrupt can reach any
        processes it spawns. Both output pipes are left open for the
        caller to drain.

        Args:
            prompt: Full prompt text for this iteration
            model: Optional model selector

        Returns:
            The running process with stdin already closed

        Raises:
            LaunchError: If the executable is missing, cannot be spawned,
                or does not accept the prompt
        """
        cmd = self.build_command(model)
        logger.info("Launching %s: %s", self.name, " ".join(cmd))

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise LaunchError(cmd[0], "not found in PATH") from e
        except OSError as e:
            raise LaunchError(cmd[0], str(e)) from e

        try:
            write_prompt(process, prompt)
        except OSError as e:
            terminate_process_group(process)
            for pipe in (process.stdout, process.stderr):
                if pipe is not None:
                    pipe.close()
            raise LaunchError(cmd[0], f"cannot write prompt: {e}") from e
        return process


def write_prompt(process: subprocess.Popen, prompt: str) -> None:
    """Write the prompt to the agent's stdin and close it.

    The agent may exit before reading all input; the resulting broken pipe
    is not an error.
    """
    if process.stdin is None:
        return
    try:
        process.stdin.write(prompt)
    except BrokenPipeError:
        logger.debug("Agent closed stdin before reading the full prompt")
    finally:
        try:
            process.stdin.close()
        except BrokenPipeError:
            pass


# ---------------------------------------------------------------------------
# Claude Code
# ---------------------------------------------------------------------------

class ClaudeRunner(AgentRunner):
    """Claude Code backend using `claude -p` with plain text output."""

    name = "claude"
    executable = "claude"

    def build_command(self, model=None):
        cmd = [self.executable, "-p", "--dangerously-skip-permissions"]
        if model:
            cmd += ["--model", model]
        return cmd


# ---------------------------------------------------------------------------
# Codex CLI
# ---------------------------------------------------------------------------

class CodexRunner(AgentRunner):
    """Codex CLI backend using `codex exec`, reading the prompt from stdin."""

    name = "codex"
    executable = "codex"

    def build_command(self, model=None):
        cmd = [self.executable, "exec", "--skip-git-repo-check"]
        if model:
            cmd += ["--model", model]
        cmd.append("-")
        return cmd


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_AGENTS: dict[str, type[AgentRunner]] = {
    "claude": ClaudeRunner,
    "codex": CodexRunner,
}


def available_agents() -> list[str]:
    return list(_AGENTS)


def get_agent(name: str) -> AgentRunner:
    """Create an agent runner by name.

    Args:
        name: Agent identifier ("claude" or "codex")

    Returns:
        Configured AgentRunner instance

    Raises:
        ValueError: If agent name is unknown
    """
    cls = _AGENTS.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown agent '{name}'. Available: {', '.join(_AGENTS)}"
        )
    return cls()
