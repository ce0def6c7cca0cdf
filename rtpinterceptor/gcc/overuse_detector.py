"""Detection of network over- and under-use from delay gradient estimates."""

from __future__ import annotations

import time
from typing import Callable, Iterable, Iterator, Protocol

from .common import DelayStats, Usage


class Threshold(Protocol):
    def compare(self, estimate: int, delta: int) -> tuple[Usage, int, int]: ...


class OveruseDetector:
    """Signals overuse only after it persisted for ``overuse_time`` nanoseconds while growing."""

    def __init__(
        self,
        threshold: Threshold,
        overuse_time: int,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.threshold = threshold
        self.overuse_time = overuse_time
        self._clock = clock

    def run(self, estimates: Iterable[DelayStats]) -> Iterator[DelayStats]:
        """Yield one DelayStats with the detected usage per incoming estimate."""
        last_estimate = 0
        last_update = self._clock()
        increasing_duration = 0
        increasing_counter = 0

        for stats in estimates:
            now = self._clock()
            delta = now - last_update
            last_update = now

            threshold_use, estimate, current_threshold = self.threshold.compare(
                stats.estimate, stats.last_receive_delta
            )

            use = Usage.NORMAL
            if threshold_use == Usage.OVER:
                if increasing_duration == 0:
                    increasing_duration = delta // 2
                else:
                    increasing_duration += delta
                increasing_counter += 1
                if (
                    increasing_duration > self.overuse_time
                    and increasing_counter > 1
                    and estimate > last_estimate
                ):
                    use = Usage.OVER
            elif threshold_use == Usage.UNDER:
                increasing_counter = 0
                increasing_duration = 0
                use = Usage.UNDER
            else:
                increasing_duration = 0
                increasing_counter = 0
            last_estimate = estimate

            yield DelayStats(
                measurement=stats.measurement,
                estimate=estimate,
                threshold=current_threshold,
                last_receive_delta=delta,
                usage=use,
            )