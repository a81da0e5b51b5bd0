# ralphctl - iteration loop engine
"""
ralphctl - Run an AI agent in a loop, one fresh invocation per iteration.

The CLI handles the loop; the agent handles the work and reports how the
loop should proceed through control markers in its output.
"""

__version__ = "0.1.0"

from .agent import AgentRunner, get_agent
from .errors import ExitCode, LaunchError, RalphError, StreamError
from .interrupt import CancellationToken
from .loop import LoopConfig, LoopResult, LoopRunner, Outcome, run_loop
from .signals import ControlSignal, Protocol, SignalKind, detect_signal


__all__ = [
    "__version__",
    "main",
    "AgentRunner",
    "CancellationToken",
    "ControlSignal",
    "ExitCode",
    "LaunchError",
    "LoopConfig",
    "LoopResult",
    "LoopRunner",
    "Outcome",
    "Protocol",
    "RalphError",
    "SignalKind",
    "StreamError",
    "detect_signal",
    "get_agent",
    "run_loop",
]


def main() -> None:
    """Main entry point for the ralphctl CLI."""
    from .cli import main as cli_main
    try:
        cli_main()
    except KeyboardInterrupt:
        print()
        raise SystemExit(130)
