"""
CLI argument parsing and command dispatch for ralphctl.

This module handles command-line interface concerns separate from
the core loop logic.
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .agent import available_agents, get_agent
from .config import RalphConfig, load_config
from .errors import ExitCode, RalphError, WorkspaceError, die
from .interrupt import CancellationToken, install_interrupt_handler
from .iteration_log import IterationLog
from .loop import LoopConfig, LoopResult, LoopRunner
from .prompt import (
    IMPLEMENTATION_PLAN_FILE,
    QUESTION_FILE,
    create_question_template,
    investigation_notes,
    read_prompt,
    validate_required_files,
    write_question,
    write_reverse_prompt,
)
from .signals import Protocol
from .stats import LoopStats
from .tasks import count_checkboxes

logger = logging.getLogger(__name__)


def _add_loop_options(parser: argparse.ArgumentParser, default_max: int) -> None:
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        metavar="N",
        help=f"Maximum iterations before stopping (default: {default_max})",
    )
    parser.add_argument(
        "--pause",
        action="store_true",
        help="Prompt for confirmation before each iteration",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        metavar="MODEL",
        help="Model to use (e.g. 'sonnet', 'opus', or a full model name)",
    )
    parser.add_argument(
        "--agent",
        choices=available_agents(),
        default=None,
        help="Agent backend (default: claude)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralphctl",
        description="Run an AI agent in a loop until it reports done, blocked or found.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ralphctl run                        # Run up to 50 iterations
  ralphctl run --max-iterations 10    # Limit to 10 iterations
  ralphctl run --pause                # Confirm before each iteration
  ralphctl reverse "Why does auth fail?"
  ralphctl status                     # Task completion progress

Exit codes:
  0   Success (done / found), or stopped by user
  1   Error
  2   Max iterations reached
  3   Blocked
  4   Inconclusive (reverse only)
  130 Interrupted
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Configuration file (default: ./.ralphctl.yaml if present)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Execute the build loop until done or blocked",
        description="Pipe PROMPT.md to the agent each iteration. The loop ends on "
                    "[[RALPH:DONE]] or [[RALPH:BLOCKED:<reason>]].",
    )
    _add_loop_options(run_parser, default_max=50)

    reverse_parser = subparsers.add_parser(
        "reverse",
        help="Investigate the codebase to answer a question",
        description="Run an investigation loop. The loop ends on [[RALPH:FOUND:<summary>]], "
                    "[[RALPH:INCONCLUSIVE:<reason>]] or [[RALPH:BLOCKED:<reason>]].",
    )
    reverse_parser.add_argument(
        "question",
        nargs="?",
        help=f"The investigation question (reads {QUESTION_FILE} if omitted)",
    )
    _add_loop_options(reverse_parser, default_max=100)

    subparsers.add_parser(
        "status",
        help=f"Show task progress from {IMPLEMENTATION_PLAN_FILE}",
    )

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def resolve_loop_config(config: RalphConfig, args: argparse.Namespace, protocol: Protocol) -> LoopConfig:
    """Merge file configuration with command-line flags into a LoopConfig."""
    mode = "run" if protocol is Protocol.BUILD else "reverse"
    config = config.with_overrides(
        mode=mode,
        max_iterations=args.max_iterations,
        pause=True if args.pause else None,
        model=args.model,
        agent=args.agent,
    )
    section = getattr(config, mode)
    return LoopConfig(
        protocol=protocol,
        max_iterations=section.max_iterations,
        pause=section.pause,
        model=config.model,
        grace_period=config.grace_period,
        log_file=config.log_file,
    )


def execute_loop(prompt: str, loop_config: LoopConfig, agent: str, cwd: Path) -> LoopResult:
    """Run one loop with a fresh cancellation token and print the summary."""
    runner = get_agent(agent)
    if not runner.check_available():
        die(f"{runner.executable} not found in PATH")

    token = CancellationToken()
    stats = LoopStats()
    log = IterationLog(cwd / loop_config.log_file)

    with install_interrupt_handler(token):
        result = LoopRunner(loop_config, runner, token, log=log, stats=stats, cwd=cwd).run(prompt)

    stats.print_summary(result.outcome.value, result.log_errors)
    return result


def run_cmd(args: argparse.Namespace, config: RalphConfig, cwd: Path) -> int:
    validate_required_files(cwd)
    prompt = read_prompt(cwd)
    loop_config = resolve_loop_config(config, args, Protocol.BUILD)
    agent = args.agent or config.agent
    return int(execute_loop(prompt, loop_config, agent, cwd).exit_code)


def reverse_cmd(args: argparse.Namespace, config: RalphConfig, cwd: Path) -> int:
    if args.question:
        write_question(cwd, args.question)
    elif not (cwd / QUESTION_FILE).exists():
        create_question_template(cwd)
        print(
            f"Created {QUESTION_FILE}. Edit it with your investigation question, "
            "then run 'ralphctl reverse' again.",
            file=sys.stderr,
        )
        return int(ExitCode.ERROR)

    loop_config = resolve_loop_config(config, args, Protocol.INVESTIGATE)
    agent = args.agent or config.agent
    prompt = write_reverse_prompt(cwd)
    result = execute_loop(prompt, loop_config, agent, cwd)
    notes = investigation_notes(cwd)
    if notes:
        print(f"Investigation notes: {', '.join(notes)}", file=sys.stderr)
    return int(result.exit_code)


def status_cmd(cwd: Path) -> int:
    path = cwd / IMPLEMENTATION_PLAN_FILE
    if not path.is_file():
        raise WorkspaceError(f"{IMPLEMENTATION_PLAN_FILE} not found")
    count = count_checkboxes(path.read_text(encoding="utf-8"))
    print(count.render_progress_bar())
    return int(ExitCode.SUCCESS)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ralphctl CLI."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    cwd = Path.cwd()

    try:
        if args.command == "status":
            exit_code = status_cmd(cwd)
        else:
            config = load_config(args.config, cwd=cwd)
            if args.command == "run":
                exit_code = run_cmd(args, config, cwd)
            else:
                exit_code = reverse_cmd(args, config, cwd)
    except RalphError as e:
        logger.debug("Command failed", exc_info=True)
        die(str(e), e.exit_code)

    sys.exit(exit_code)
