"""Over-use threshold that adapts to the measured delay gradient."""

from __future__ import annotations

import time
from typing import Callable, Optional

from .common import MICROSECOND, MILLISECOND, Usage, clamp, to_microseconds, to_milliseconds

MAX_DELTAS = 60
_MAX_TIME_DELTA_MS = 100


class AdaptiveThreshold:
    """Threshold that grows quickly when estimates leave [-thresh, thresh] and shrinks slowly inside it.

    The defaults follow draft-ietf-rmcat-gcc-02, section 5.4. Durations are in
    nanoseconds; ``clock`` returns the current time in nanoseconds.
    """

    def __init__(
        self,
        *,
        initial_threshold: int = 12_500 * MICROSECOND,
        overuse_coefficient_up: float = 0.01,
        overuse_coefficient_down: float = 0.00018,
        min_threshold: int = 6 * MILLISECOND,
        max_threshold: int = 600 * MILLISECOND,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.threshold = initial_threshold
        self.overuse_coefficient_up = overuse_coefficient_up
        self.overuse_coefficient_down = overuse_coefficient_down
        self.min_threshold = min_threshold
        self.max_threshold = max_threshold
        self._clock = clock
        self._last_update: Optional[int] = None
        self._num_deltas = 0

    def compare(self, estimate: int, dt: int) -> tuple[Usage, int, int]:
        """Classify ``estimate``; return the usage, the scaled estimate and the threshold used."""
        self._num_deltas += 1
        if self._num_deltas < 2:
            return Usage.NORMAL, estimate, self.max_threshold
        scaled = min(self._num_deltas, MAX_DELTAS) * estimate
        if scaled > self.threshold:
            use = Usage.OVER
        elif scaled < -self.threshold:
            use = Usage.UNDER
        else:
            use = Usage.NORMAL
        current = self.threshold
        self._update(scaled)
        return use, scaled, current

    def _update(self, estimate: int) -> None:
        now = self._clock()
        if self._last_update is None:
            self._last_update = now
        abs_estimate = abs(to_microseconds(estimate)) * MICROSECOND
        if abs_estimate > self.threshold + 15 * MILLISECOND:
            self._last_update = now
            return
        k = self.overuse_coefficient_up
        if abs_estimate < self.threshold:
            k = self.overuse_coefficient_down
        time_delta_ms = min(to_milliseconds(now - self._last_update), _MAX_TIME_DELTA_MS)
        difference = abs_estimate - self.threshold
        add = k * to_milliseconds(difference) * time_delta_ms
        self.threshold += int(add) * MILLISECOND
        self.threshold = clamp(self.threshold, self.min_threshold, self.max_threshold)
        self._last_update = now