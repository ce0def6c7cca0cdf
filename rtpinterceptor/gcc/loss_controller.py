"""Loss-based bandwidth estimation (draft-ietf-rmcat-gcc-02, section 6)."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ..twcc_feedback import Acknowledgment
from .common import MILLISECOND, clamp, to_milliseconds

_log = logging.getLogger(__name__)

INCREASE_LOSS_THRESHOLD = 0.02
INCREASE_TIME_THRESHOLD = 200 * MILLISECOND
INCREASE_FACTOR = 1.05

DECREASE_LOSS_THRESHOLD = 0.1
DECREASE_TIME_THRESHOLD = 200 * MILLISECOND

DEFAULT_MIN_BITRATE = 100_000
DEFAULT_MAX_BITRATE = 100_000_000


@dataclass
class LossStats:
    """Internal statistics of the loss-based controller."""

    target_bitrate: int = 0
    average_loss: float = 0.0


def _older_than(moment: Optional[int], now: int, threshold: int) -> bool:
    return moment is None or now - moment > threshold


class LossBasedBandwidthEstimator:
    """Raises the bitrate while loss is low and lowers it while loss is high.

    ``clock`` returns the current time in nanoseconds.
    """

    def __init__(
        self,
        initial_bitrate: int,
        *,
        min_bitrate: int = DEFAULT_MIN_BITRATE,
        max_bitrate: int = DEFAULT_MAX_BITRATE,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._lock = threading.Lock()
        self.min_bitrate = min_bitrate
        self.max_bitrate = max_bitrate
        self.bitrate = initial_bitrate
        self.average_loss = 0.0
        self._clock = clock
        self._last_loss_update: Optional[int] = None
        self._last_increase: Optional[int] = None
        self._last_decrease: Optional[int] = None

    def get_estimate(self, wanted_rate: int) -> LossStats:
        """Return the loss-based target, never above ``wanted_rate``."""
        with self._lock:
            if self.bitrate <= 0:
                self.bitrate = clamp(wanted_rate, self.min_bitrate, self.max_bitrate)
            self.bitrate = min(wanted_rate, self.bitrate)
            return LossStats(target_bitrate=self.bitrate, average_loss=self.average_loss)

    def update_loss_estimate(self, results: Iterable[Acknowledgment]) -> None:
        """Fold one feedback report into the loss average and adapt the bitrate."""
        results = list(results)
        if not results:
            return
        lost = sum(1 for ack in results if ack.arrival == 0)

        with self._lock:
            now = self._clock()
            loss_ratio = lost / len(results)
            self.average_loss = self._average(now, self.average_loss, loss_ratio)
            self._last_loss_update = now

            increase_loss = max(self.average_loss, loss_ratio)
            decrease_loss = min(self.average_loss, loss_ratio)

            if increase_loss < INCREASE_LOSS_THRESHOLD and _older_than(
                self._last_increase, now, INCREASE_TIME_THRESHOLD
            ):
                _log.info(
                    "loss controller increasing; averageLoss: %s, decreaseLoss: %s, increaseLoss: %s",
                    self.average_loss, decrease_loss, increase_loss,
                )
                self._last_increase = now
                self.bitrate = clamp(
                    int(INCREASE_FACTOR * self.bitrate), self.min_bitrate, self.max_bitrate
                )
            elif decrease_loss > DECREASE_LOSS_THRESHOLD and _older_than(
                self._last_decrease, now, DECREASE_TIME_THRESHOLD
            ):
                _log.info(
                    "loss controller decreasing; averageLoss: %s, decreaseLoss: %s, increaseLoss: %s",
                    self.average_loss, decrease_loss, increase_loss,
                )
                self._last_decrease = now
                self.bitrate = clamp(
                    int(self.bitrate * (1 - 0.5 * decrease_loss)), self.min_bitrate, self.max_bitrate
                )

    def _average(self, now: int, previous: float, sample: float) -> float:
        if self._last_loss_update is None:
            return sample
        elapsed_ms = to_milliseconds(now - self._last_loss_update)
        return sample + math.exp(-elapsed_ms / 200.0) * (previous - sample)