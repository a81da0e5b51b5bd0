"""
Main iteration loop logic.

Contains the loop that invokes an agent iteratively, one fresh process per
iteration, until the agent reports a terminal control signal, the operator
stops or interrupts the run, or the iteration ceiling is reached. Every run
ends in exactly one Outcome.
"""

import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Callable

from .agent import AgentRunner
from .errors import ExitCode, LaunchError, StreamError
from .interrupt import DEFAULT_GRACE_PERIOD, CancellationToken
from .iteration_log import DEFAULT_LOG_FILE, IterationLog, format_iteration_header
from .prompt import task_progress
from .signals import ControlSignal, Protocol, SignalKind, detect_signal, markers_for
from .stats import LoopStats, plural
from .stream import stream_process

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Terminal outcome of a loop run."""
    SUCCESS = "success"
    BLOCKED = "blocked"
    INCONCLUSIVE = "inconclusive"
    EXHAUSTED = "exhausted"
    INTERRUPTED = "interrupted"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def exit_code(self) -> ExitCode:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    Outcome.SUCCESS: ExitCode.SUCCESS,
    Outcome.STOPPED: ExitCode.SUCCESS,
    Outcome.ERROR: ExitCode.ERROR,
    Outcome.EXHAUSTED: ExitCode.EXHAUSTED,
    Outcome.BLOCKED: ExitCode.BLOCKED,
    Outcome.INCONCLUSIVE: ExitCode.INCONCLUSIVE,
    Outcome.INTERRUPTED: ExitCode.INTERRUPTED,
}


@dataclass
class LoopConfig:
    """Resolved settings for one loop run.

    Attributes:
        protocol: Marker protocol (build or investigate)
        max_iterations: Iteration ceiling, at least 1
        pause: Ask the operator before each iteration after the first
        model: Optional model selector forwarded to the agent
        grace_period: Seconds between SIGTERM and SIGKILL on interrupt
        log_file: Path of the append-only iteration log
    """
    protocol: Protocol = Protocol.BUILD
    max_iterations: int = 50
    pause: bool = False
    model: str | None = None
    grace_period: float = DEFAULT_GRACE_PERIOD
    log_file: str = DEFAULT_LOG_FILE

    def __post_init__(self):
        self.protocol = Protocol(self.protocol)
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")


@dataclass
class IterationRecord:
    """One pass of the loop, from launch to signal detection."""
    iteration: int
    started_at: datetime
    output: str = ""
    signal: ControlSignal | None = None
    duration: float = 0.0
    returncode: int | None = None


@dataclass
class LoopState:
    """Mutable state of a running loop.

    ``outcome`` is assigned exactly once, by ``finish()``.
    ``operator_confirmed`` is set when the operator already chose to go on
    after the last iteration, so the pause question is not asked again.
    """
    max_iterations: int
    protocol: Protocol
    iteration: int = 0
    interrupted: bool = False
    operator_confirmed: bool = False
    outcome: Outcome | None = None
    reason: str | None = None
    signal: ControlSignal | None = None

    @property
    def running(self) -> bool:
        return self.outcome is None

    def next_iteration(self) -> int:
        self.iteration += 1
        return self.iteration

    def finish(self, outcome: Outcome, reason: str | None = None) -> None:
        if self.outcome is not None:
            raise RuntimeError(
                f"loop already finished as {self.outcome.value}, cannot finish as {outcome.value}"
            )
        self.outcome = outcome
        self.reason = reason
        if outcome is Outcome.INTERRUPTED:
            self.interrupted = True


@dataclass
class LoopResult:
    """What a finished run reports back to the command layer."""
    outcome: Outcome
    iterations: int
    reason: str | None = None
    signal: ControlSignal | None = None
    log_errors: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> ExitCode:
        return self.outcome.exit_code


def ask_operator(question: str, stream: IO[str] | None = None) -> str | None:
    """Print ``question`` to stderr and read one line from stdin.

    Returns the trimmed, lower-cased answer, or None at end of input.
    """
    out = stream or sys.stderr
    out.write(question)
    out.flush()
    line = sys.stdin.readline()
    if not line:
        return None
    return line.strip().lower()


def prompt_continue(ask: Callable[[str], str | None] = ask_operator) -> bool:
    """``Continue? [Y/n]``: empty, y or yes continue; anything else stops."""
    answer = ask("Continue? [Y/n] ")
    return answer is not None and answer in ("", "y", "yes")


def prompt_no_signal(
    protocol: Protocol,
    ask: Callable[[str], str | None] = ask_operator,
) -> bool:
    """Ask whether to keep going after an iteration without a marker.

    Empty, c or continue continue; anything else, including end of input,
    stops.
    """
    markers = " or ".join(markers_for(protocol))
    answer = ask(f"warning: no {markers} signal detected\nContinue or stop? [C/s] ")
    return answer is not None and answer in ("", "c", "continue")


class LoopRunner:
    """Runs the iteration loop for one protocol.

    Args:
        config: Resolved loop settings
        runner: AgentRunner that launches one agent process per iteration
        token: Cancellation token for this run only
        log: Iteration log (default: IterationLog at config.log_file)
        stats: LoopStats to accumulate into
        ask: Operator prompt function, returns None at end of input
        stdout: Sink for agent stdout and progress messages
        stderr: Sink for agent stderr, warnings and operator prompts
        cwd: Workspace directory used for the interrupt task summary
    """

    def __init__(
        self,
        config: LoopConfig,
        runner: AgentRunner,
        token: CancellationToken,
        *,
        log: IterationLog | None = None,
        stats: LoopStats | None = None,
        ask: Callable[[str], str | None] | None = None,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
        cwd: Path | None = None,
    ):
        self.config = config
        self.runner = runner
        self.token = token
        self.log = log if log is not None else IterationLog(config.log_file)
        self.stats = stats if stats is not None else LoopStats()
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.ask = ask or (lambda question: ask_operator(question, self.stderr))
        self.cwd = cwd

    def _say(self, message: str) -> None:
        print(message, file=self.stdout, flush=True)

    def _warn(self, message: str) -> None:
        print(message, file=self.stderr, flush=True)

    def run(self, prompt: str) -> LoopResult:
        """
        Run the loop until it reaches a terminal outcome.

        Args:
            prompt: Prompt text sent to the agent on every iteration

        Returns:
            LoopResult with the single terminal outcome of this run
        """
        state = LoopState(
            max_iterations=self.config.max_iterations,
            protocol=self.config.protocol,
        )
        logger.info(
            "Starting %s loop: max_iterations=%d agent=%s model=%s",
            state.protocol.value, state.max_iterations,
            self.runner.name, self.config.model,
        )

        while state.running:
            if self.token.cancelled:
                self._finish_interrupted(state)
                break

            if state.iteration >= state.max_iterations:
                self._finish_exhausted(state)
                break

            if self.config.pause and state.iteration > 0 and not state.operator_confirmed:
                if not prompt_continue(self.ask):
                    if self.token.cancelled:
                        self._finish_interrupted(state)
                    else:
                        self._say("Stopped by user.")
                        state.finish(Outcome.STOPPED)
                    break
                if self.token.cancelled:
                    self._finish_interrupted(state)
                    break

            self._run_pass(state, prompt)

        return LoopResult(
            outcome=state.outcome,
            iterations=state.iteration,
            reason=state.reason,
            signal=state.signal,
            log_errors=list(self.log.errors),
        )

    def _run_pass(self, state: LoopState, prompt: str) -> None:
        """Run one iteration and apply its signal to ``state``."""
        iteration = state.next_iteration()
        state.operator_confirmed = False
        self._say(format_iteration_header(iteration))
        self.stats.iterations_started += 1

        record = IterationRecord(iteration=iteration, started_at=datetime.now(timezone.utc))
        start = time.monotonic()

        try:
            process = self.runner.launch(prompt, self.config.model)
            result = stream_process(
                process,
                self.token,
                stdout=self.stdout,
                stderr=self.stderr,
                grace_period=self.config.grace_period,
            )
        except LaunchError as e:
            logger.error("Iteration %d failed to launch: %s", iteration, e)
            self._warn(f"error: {e}")
            state.finish(Outcome.ERROR, str(e))
            return
        except StreamError as e:
            logger.error("Iteration %d stream failure: %s", iteration, e)
            self._warn(f"error: {e}")
            state.finish(Outcome.ERROR, str(e))
            return

        record.duration = time.monotonic() - start
        record.output = result.output
        record.returncode = result.returncode
        record.signal = detect_signal(result.output, state.protocol)
        self.log.append(record)

        if result.interrupted or self.token.cancelled:
            self._finish_interrupted(state)
            return

        self.stats.record_iteration(record.signal.kind.value, record.duration, result.returncode)
        if result.returncode not in (0, None):
            logger.warning("%s exited with code %s", self.runner.name, result.returncode)
            self._warn(f"warning: {self.runner.name} exited with code {result.returncode}")

        self._apply_signal(state, record.signal)

    def _apply_signal(self, state: LoopState, signal: ControlSignal) -> None:
        state.signal = signal
        kind = signal.kind
        logger.info("Iteration %d signal: %s", state.iteration, signal)

        if kind is SignalKind.BLOCKED:
            self._warn(f"blocked: {signal.payload}")
            state.finish(Outcome.BLOCKED, signal.payload)
        elif kind is SignalKind.DONE:
            self._say("=== Loop complete ===")
            state.finish(Outcome.SUCCESS)
        elif kind is SignalKind.FOUND:
            self._say("=== Investigation complete ===")
            self._say(f"Found: {signal.payload}")
            state.finish(Outcome.SUCCESS, signal.payload)
        elif kind is SignalKind.INCONCLUSIVE:
            self._warn("=== Investigation inconclusive ===")
            self._warn(signal.payload or "")
            state.finish(Outcome.INCONCLUSIVE, signal.payload)
        elif kind is SignalKind.NO_SIGNAL:
            if prompt_no_signal(state.protocol, self.ask):
                state.operator_confirmed = True
            elif self.token.cancelled:
                self._finish_interrupted(state)
            else:
                self._say("Stopped by user.")
                state.finish(Outcome.STOPPED)
        # CONTINUE: nothing to do, the while loop starts the next pass

    def _finish_interrupted(self, state: LoopState) -> None:
        completed = self.stats.iterations_completed
        if state.protocol is Protocol.BUILD:
            self._warn(f"Interrupted after {plural(completed, 'iteration')}. {task_progress(self.cwd)}.")
        else:
            self._warn(f"Interrupted after {plural(completed, 'iteration')}.")
        state.finish(Outcome.INTERRUPTED)

    def _finish_exhausted(self, state: LoopState) -> None:
        if state.protocol is Protocol.BUILD:
            target = "[[RALPH:DONE]]"
        else:
            target = "finding an answer"
        self._warn(f"warning: reached max iterations ({state.max_iterations}) without {target}")
        state.finish(Outcome.EXHAUSTED)


def run_loop(
    prompt: str,
    config: LoopConfig,
    runner: AgentRunner,
    token: CancellationToken | None = None,
    **kwargs,
) -> LoopResult:
    """Convenience wrapper: run one loop with a fresh token if none given."""
    return LoopRunner(config, runner, token or CancellationToken(), **kwargs).run(prompt)
