"""
Operator interrupt handling for the iteration loop.

A Ctrl+C never tears anything down directly. The signal handler only sets
a CancellationToken; the watcher thread running alongside each agent
process observes the token and terminates the agent's whole process group,
escalating from SIGTERM to SIGKILL after a grace period.
"""

import logging
import os
import signal
import subprocess
import threading
import time
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

# Seconds to wait after SIGTERM before sending SIGKILL
DEFAULT_GRACE_PERIOD = 5.0

# How often the watcher checks the token and termination checks the group
POLL_INTERVAL = 0.1


class CancellationToken:
    """Write-once cancellation flag shared by one loop run.

    Created when the run starts and handed to every component that needs
    to observe an interrupt. Once cancelled it stays cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout elapses. Returns the flag."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


@contextmanager
def install_interrupt_handler(
    token: CancellationToken,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[CancellationToken]:
    """Route interrupt signals to ``token`` for the duration of the block.

    Must be entered from the main thread. Previous handlers are restored on
    exit, so nested or sequential runs never share a token.
    """
    def _handler(signum, frame):
        token.cancel()

    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _handler)
    try:
        yield token
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def terminate_process_group(
    process: subprocess.Popen,
    grace_period: float = DEFAULT_GRACE_PERIOD,
) -> int | None:
    """Terminate ``process`` and every process in its group.

    Sends SIGTERM to the group, waits up to ``grace_period`` seconds for
    the agent to exit and the group to empty, then sends SIGKILL. The
    process must have been started with ``start_new_session=True`` so that
    its pid is also its group id. That id stays valid after the agent
    itself has exited, as long as any process it started is still alive.

    Returns:
        The process return code, or None if it could not be reaped
    """
    pgid = process.pid
    if process.poll() is not None and not _group_alive(pgid):
        return process.returncode

    logger.info("Sending SIGTERM to process group %d", pgid)
    _signal_group(pgid, signal.SIGTERM)
    if _wait_for_group(process, pgid, grace_period):
        return process.returncode

    logger.warning(
        "Process group %d still running after %.1fs, sending SIGKILL",
        pgid, grace_period,
    )
    _signal_group(pgid, signal.SIGKILL)
    try:
        return process.wait(timeout=grace_period)
    except subprocess.TimeoutExpired:
        logger.error("pid %d did not exit after SIGKILL", process.pid)
        return None


def _group_alive(pgid: int) -> bool:
    try:
        os.killpg(pgid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _wait_for_group(process: subprocess.Popen, pgid: int, timeout: float) -> bool:
    """Wait until the agent has exited and its group is empty."""
    deadline = time.monotonic() + timeout
    while True:
        if process.poll() is not None and not _group_alive(pgid):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(POLL_INTERVAL)


def _signal_group(pgid: int, signum: int) -> None:
    try:
        os.killpg(pgid, signum)
    except ProcessLookupError:
        logger.debug("Process group %d already gone", pgid)
    except PermissionError as e:
        logger.warning("Cannot signal process group %d: %s", pgid, e)


class ProcessWatcher(threading.Thread):
    """Terminates an agent's process group once the token is cancelled.

    Runs until ``stop()`` is called, which the stream multiplexer does
    only after both output pipes are drained. The agent may exit earlier
    while a process it started still holds a pipe open, so the watcher
    must outlive the agent itself. ``triggered`` records whether this
    watcher sent the termination.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        token: CancellationToken,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        poll_interval: float = POLL_INTERVAL,
    ):
        super().__init__(name=f"ralph-watcher-{process.pid}", daemon=True)
        self.process = process
        self.token = token
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self.triggered = False
        self._stopped = threading.Event()

    def stop(self) -> None:
        self._stopped.set()

    def run(self) -> None:
        while not self._stopped.is_set():
            if self.token.wait(self.poll_interval):
                if not self._stopped.is_set():
                    self.triggered = True
                    terminate_process_group(self.process, self.grace_period)
                return
