"""Received bitrate over a sliding window of acknowledgments."""

from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator

from ..twcc_feedback import Acknowledgment
from .common import MILLISECOND, SECOND


def _seconds(duration: int) -> float:
    quotient, remainder = divmod(abs(duration), SECOND)
    value = quotient + remainder / 1e9
    return -value if duration < 0 else value


class RateCalculator:
    """Computes the receive rate in bits per second of arrived packets within ``window`` nanoseconds."""

    def __init__(self, window: int = 500 * MILLISECOND) -> None:
        self.window = window

    def run(self, acks: Iterable[Acknowledgment]) -> Iterator[int]:
        """Yield a rate after every acknowledgment of a packet that arrived."""
        history: deque[Acknowledgment] = deque()
        total = 0
        first = True
        for ack in acks:
            if ack.arrival == 0:
                continue
            history.append(ack)
            total += ack.size

            if first:
                first = False
                yield ack.size * 8
                continue

            deadline = ack.arrival - self.window
            while history and history[0].arrival < deadline:
                total -= history.popleft().size
            if not history:
                yield 0
                continue
            span = ack.arrival - history[0].arrival
            if span <= 0:
                yield 0
                continue
            yield int(8 * total / _seconds(span))