"""
Concurrent draining of agent output.

Both pipes of the agent are read by their own thread so that a child
writing heavily to one channel never stalls on a full buffer while the
parent waits on the other. Each line is echoed to the terminal as it
arrives and kept for signal detection once both readers have finished.
"""

import logging
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from typing import IO

from .errors import StreamError
from .interrupt import (
    DEFAULT_GRACE_PERIOD,
    CancellationToken,
    ProcessWatcher,
    terminate_process_group,
)

logger = logging.getLogger(__name__)


@dataclass
class StreamResult:
    """Everything captured from one agent process.

    Attributes:
        returncode: Exit status of the agent (negative if killed by a signal)
        stdout: Primary channel text, verbatim
        stderr: Diagnostic channel text, verbatim
        output: Lines of both channels merged in arrival order
        interrupted: True if the run was cancelled while the agent ran
    """
    returncode: int | None
    stdout: str
    stderr: str
    output: str
    interrupted: bool = False


class StreamReader(threading.Thread):
    """Drain one pipe into ``sink`` and a private line buffer.

    The buffer holds ``(arrival_ns, line)`` pairs and must only be read
    after ``join()``.
    """

    def __init__(self, name: str, pipe: IO[str] | None, sink: IO[str]):
        super().__init__(name=f"ralph-{name}", daemon=True)
        self.channel = name
        self.pipe = pipe
        self.sink = sink
        self.lines: list[tuple[int, str]] = []
        self.error: BaseException | None = None

    def run(self) -> None:
        if self.pipe is None:
            return
        try:
            for line in iter(self.pipe.readline, ""):
                self.lines.append((time.monotonic_ns(), line))
                self._echo(line)
        except (OSError, ValueError) as e:
            self.error = e
        finally:
            try:
                self.pipe.close()
            except OSError:
                pass

    def _echo(self, line: str) -> None:
        # A closed terminal must not stop capture; the text is still logged.
        try:
            self.sink.write(line)
            self.sink.flush()
        except (OSError, ValueError) as e:
            logger.debug("Echo to %s failed: %s", self.channel, e)

    @property
    def text(self) -> str:
        return "".join(line for _, line in self.lines)


def merge_lines(*readers: StreamReader) -> str:
    """Merge the buffers of joined readers by arrival time.

    Text is kept verbatim. A channel's unterminated last line only gets a
    newline when a line from another channel follows it.
    """
    stamped = []
    for order, reader in enumerate(readers):
        stamped.extend((stamp, order, line) for stamp, line in reader.lines)
    stamped.sort(key=lambda item: (item[0], item[1]))
    merged = [line for _, _, line in stamped]
    for i, line in enumerate(merged[:-1]):
        if not line.endswith("\n"):
            merged[i] = line + "\n"
    return "".join(merged)


def stream_process(
    process: subprocess.Popen,
    token: CancellationToken | None = None,
    *,
    stdout: IO[str] | None = None,
    stderr: IO[str] | None = None,
    grace_period: float = DEFAULT_GRACE_PERIOD,
) -> StreamResult:
    """
    Stream a running agent to the terminal until it exits.

    Starts one reader per output pipe plus, when a token is given, a
    watcher that terminates the agent's process group on cancellation.
    Returns only after the process has exited and both readers joined.

    Args:
        process: Agent started with stdout/stderr pipes in text mode
        token: Cancellation token for the current loop run
        stdout: Sink for the primary channel (default: sys.stdout)
        stderr: Sink for the diagnostic channel (default: sys.stderr)
        grace_period: Seconds between SIGTERM and SIGKILL on interrupt

    Returns:
        StreamResult with both channels and the merged output

    Raises:
        StreamError: If reading either channel failed
    """
    out_reader = StreamReader("stdout", process.stdout, stdout or sys.stdout)
    err_reader = StreamReader("stderr", process.stderr, stderr or sys.stderr)
    out_reader.start()
    err_reader.start()

    watcher = None
    if token is not None:
        watcher = ProcessWatcher(process, token, grace_period=grace_period)
        watcher.start()

    try:
        returncode = process.wait()
    except BaseException:
        terminate_process_group(process, grace_period)
        raise
    finally:
        # A reader can outlive the agent while a grandchild holds the pipe;
        # the watcher keeps honouring the token until both have drained.
        out_reader.join()
        err_reader.join()
        if watcher is not None:
            watcher.stop()
            watcher.join()

    for reader in (out_reader, err_reader):
        if reader.error is not None:
            raise StreamError(reader.channel, reader.error)

    interrupted = token is not None and token.cancelled
    logger.debug(
        "Agent pid %d exited with %s (interrupted=%s, %d+%d lines)",
        process.pid, returncode, interrupted,
        len(out_reader.lines), len(err_reader.lines),
    )

    return StreamResult(
        returncode=returncode,
        stdout=out_reader.text,
        stderr=err_reader.text,
        output=merge_lines(out_reader, err_reader),
        interrupted=interrupted,
    )
