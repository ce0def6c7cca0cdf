"""Shared types and helpers of the congestion controller.

Durations and timestamps are integers in nanoseconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

NANOSECOND = 1
MICROSECOND = 1_000
MILLISECOND = 1_000_000
SECOND = 1_000_000_000


def _truncating_div(value: int, unit: int) -> int:
    quotient = abs(value) // unit
    return quotient if value >= 0 else -quotient


def to_microseconds(duration: int) -> int:
    """Whole microseconds in ``duration``, truncated toward zero."""
    return _truncating_div(int(duration), MICROSECOND)


def to_milliseconds(duration: int) -> int:
    """Whole milliseconds in ``duration``, truncated toward zero."""
    return _truncating_div(int(duration), MILLISECOND)


def clamp(value, low, high):
    """Limit ``value`` to the range [low, high]."""
    return max(low, min(high, value))


class Usage(IntEnum):
    """Network usage signalled by the overuse detector."""

    OVER = 0
    UNDER = 1
    NORMAL = 2

    def __str__(self) -> str:
        return {Usage.OVER: "overuse", Usage.UNDER: "underuse", Usage.NORMAL: "normal"}[self]


class State(IntEnum):
    """State of the delay-based rate controller."""

    INCREASE = 0
    DECREASE = 1
    HOLD = 2

    def transition(self, usage: Usage) -> State:
        """The state that follows this one on the given usage signal."""
        return _TRANSITIONS.get((self, usage), State.INCREASE)

    def __str__(self) -> str:
        return {State.INCREASE: "increase", State.DECREASE: "decrease", State.HOLD: "hold"}[self]


_TRANSITIONS = {
    (State.HOLD, Usage.OVER): State.DECREASE,
    (State.HOLD, Usage.NORMAL): State.INCREASE,
    (State.HOLD, Usage.UNDER): State.HOLD,
    (State.INCREASE, Usage.OVER): State.DECREASE,
    (State.INCREASE, Usage.NORMAL): State.INCREASE,
    (State.INCREASE, Usage.UNDER): State.HOLD,
    (State.DECREASE, Usage.OVER): State.DECREASE,
    (State.DECREASE, Usage.NORMAL): State.HOLD,
    (State.DECREASE, Usage.UNDER): State.HOLD,
}


@dataclass
class DelayStats:
    """Internal statistics of the delay-based congestion controller."""

    measurement: int = 0
    estimate: int = 0
    threshold: int = 0
    last_receive_delta: int = 0
    usage: Usage = Usage.OVER
    state: State = State.INCREASE
    target_bitrate: int = 0
    rtt: int = 0