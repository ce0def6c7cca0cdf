"""Round-trip time estimate averaged over recent feedback reports."""

from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator, Sequence

from ..twcc_feedback import Acknowledgment
from .common import MILLISECOND, to_milliseconds


class RTTEstimator:
    """Averages the minimum RTT of the last ``samples`` feedback reports."""

    def __init__(self, samples: int = 100) -> None:
        self.samples = samples

    def run(self, ack_lists: Iterable[Sequence[Acknowledgment]]) -> Iterator[int]:
        """Yield an RTT in nanoseconds for every non-empty list of acknowledgments."""
        history: deque[int] = deque(maxlen=self.samples)
        for acks in ack_lists:
            if not acks:
                continue
            history.append(min(ack.rtt for ack in acks))
            total_ms = to_milliseconds(sum(history))
            yield int(total_ms / len(history) * MILLISECOND)