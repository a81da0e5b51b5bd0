"""
Control signal detection for loop iterations.

The agent decides how the loop proceeds by printing a marker such as
[[RALPH:DONE]] alone on a line. Each protocol owns a fixed marker table,
checked in priority order, so a blocker reported alongside any other
marker always wins.
"""

from dataclasses import dataclass
from enum import Enum

MARKER_OPEN = "[[RALPH:"
MARKER_CLOSE = "]]"


class Protocol(str, Enum):
    """Marker protocol active for a loop run."""
    BUILD = "build"
    INVESTIGATE = "investigate"


class SignalKind(str, Enum):
    CONTINUE = "CONTINUE"
    DONE = "DONE"
    FOUND = "FOUND"
    INCONCLUSIVE = "INCONCLUSIVE"
    BLOCKED = "BLOCKED"
    NO_SIGNAL = "NO_SIGNAL"


@dataclass(frozen=True)
class ControlSignal:
    """Resolved outcome of one iteration's output.

    Attributes:
        kind: Which marker was detected (or NO_SIGNAL)
        payload: Reason or summary text for BLOCKED/FOUND/INCONCLUSIVE,
                 None for markers without a payload
    """
    kind: SignalKind
    payload: str | None = None

    def __str__(self) -> str:
        if self.payload is None:
            return self.kind.value
        return f"{self.kind.value}({self.payload})"


NO_SIGNAL = ControlSignal(SignalKind.NO_SIGNAL)


@dataclass(frozen=True)
class MarkerSpec:
    """One row of a protocol's marker table.

    For payload markers ``text`` is the prefix up to the payload, e.g.
    ``[[RALPH:BLOCKED:``; otherwise it is the complete marker.
    """
    kind: SignalKind
    takes_payload: bool = False

    @property
    def text(self) -> str:
        if self.takes_payload:
            return f"{MARKER_OPEN}{self.kind.value}:"
        return f"{MARKER_OPEN}{self.kind.value}{MARKER_CLOSE}"

    def match(self, line: str) -> ControlSignal | None:
        """Match an already-trimmed line against this marker."""
        if not self.takes_payload:
            return ControlSignal(self.kind) if line == self.text else None
        if not line.startswith(self.text) or not line.endswith(MARKER_CLOSE):
            return None
        if len(line) < len(self.text) + len(MARKER_CLOSE):
            # Prefix and closer overlap, e.g. "[[RALPH:BLOCKED:]" + "]"
            return None
        return ControlSignal(self.kind, line[len(self.text):-len(MARKER_CLOSE)])


# Priority order: first table entry found anywhere in the output wins.
MARKER_TABLES: dict[Protocol, tuple[MarkerSpec, ...]] = {
    Protocol.BUILD: (
        MarkerSpec(SignalKind.BLOCKED, takes_payload=True),
        MarkerSpec(SignalKind.DONE),
        MarkerSpec(SignalKind.CONTINUE),
    ),
    Protocol.INVESTIGATE: (
        MarkerSpec(SignalKind.BLOCKED, takes_payload=True),
        MarkerSpec(SignalKind.FOUND, takes_payload=True),
        MarkerSpec(SignalKind.INCONCLUSIVE, takes_payload=True),
        MarkerSpec(SignalKind.CONTINUE),
    ),
}


def detect_signal(output: str, protocol: Protocol = Protocol.BUILD) -> ControlSignal:
    """
    Extract the control signal from an iteration's output.

    Every line is trimmed of surrounding whitespace and compared exactly
    against the protocol's markers. Markers quoted in prose, wrapped in
    backticks or followed by other text on the same line never match.

    Args:
        output: Full captured output of one iteration
        protocol: Marker protocol active for this run

    Returns:
        The highest-priority ControlSignal present, or NO_SIGNAL
    """
    lines = [line.strip() for line in output.splitlines()]
    candidates = [line for line in lines if line.startswith(MARKER_OPEN)]

    for spec in MARKER_TABLES[Protocol(protocol)]:
        for line in candidates:
            signal = spec.match(line)
            if signal is not None:
                return signal

    return NO_SIGNAL


def markers_for(protocol: Protocol) -> list[str]:
    """Human-readable marker list for iteration headers and warnings."""
    return [
        f"{spec.text}<{'summary' if spec.kind is SignalKind.FOUND else 'reason'}>{MARKER_CLOSE}"
        if spec.takes_payload else spec.text
        for spec in MARKER_TABLES[Protocol(protocol)]
    ]
