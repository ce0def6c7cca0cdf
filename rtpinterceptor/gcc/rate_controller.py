"""Delay-based target bitrate controller (AIMD with an exponential moving average of decreases)."""

from __future__ import annotations

import math
from typing import Callable, Optional

from .common import MILLISECOND, DelayStats, State, clamp, to_milliseconds

DECREASE_EMA_ALPHA = 0.95
BETA = 0.85


class ExponentialMovingAverage:
    """Moving average and deviation of the received rates seen at decreases."""

    def __init__(self) -> None:
        self.average = 0.0
        self.variance = 0.0
        self.std_deviation = 0.0

    def update(self, value: float) -> None:
        """Fold ``value`` into the average."""
        if self.average == 0.0:
            self.average = value
            return
        x = value - self.average
        self.average += DECREASE_EMA_ALPHA * x
        self.variance = (1 - DECREASE_EMA_ALPHA) * (self.variance + DECREASE_EMA_ALPHA * x * x)
        self.std_deviation = math.sqrt(self.variance)


class RateController:
    """Derives a target bitrate from usage signals, the received rate and the RTT.

    ``clock`` returns the current time in nanoseconds.
    """

    def __init__(
        self,
        clock: Callable[[], int],
        initial_target_bitrate: int,
        min_bitrate: int,
        max_bitrate: int,
    ) -> None:
        self._clock = clock
        self.initial_target_bitrate = initial_target_bitrate
        self.min_bitrate = min_bitrate
        self.max_bitrate = max_bitrate
        self.target = initial_target_bitrate
        self.last_update = clock()
        self.latest_rtt = 0
        self.latest_received_rate = 0
        self.latest_decrease_rate = ExponentialMovingAverage()
        self._initialized = False

    def on_received_rate(self, rate: int) -> None:
        """Record the latest measured receive rate in bits per second."""
        self.latest_received_rate = rate

    def on_rtt(self, rtt: int) -> None:
        """Record the latest round-trip time in nanoseconds."""
        self.latest_rtt = rtt

    def on_delay_stats(self, stats: DelayStats) -> Optional[DelayStats]:
        """Process one usage signal; return stats with a new target, or None when holding.

        The first signal only initialises the controller.
        """
        if not self._initialized:
            self._initialized = True
            return None
        state = stats.state.transition(stats.usage)
        if state == State.HOLD:
            return None
        if state == State.INCREASE:
            proposed = self.increase(self._clock())
        else:
            proposed = self.decrease()
        self.target = clamp(proposed, self.min_bitrate, self.max_bitrate)
        return DelayStats(
            measurement=stats.measurement,
            estimate=stats.estimate,
            threshold=stats.threshold,
            last_receive_delta=stats.last_receive_delta,
            usage=stats.usage,
            state=state,
            target_bitrate=self.target,
            rtt=self.latest_rtt,
        )

    def increase(self, now: int) -> int:
        """Proposed target after an increase at time ``now``."""
        ema = self.latest_decrease_rate
        received = float(self.latest_received_rate)
        band = 3 * ema.std_deviation
        if ema.average > 0 and ema.average - band < received < ema.average + band:
            bits_per_frame = self.target / 30.0
            packets_per_frame = math.ceil(bits_per_frame / (1200 * 8))
            expected_packet_size_bits = (
                bits_per_frame / packets_per_frame if packets_per_frame else 0.0
            )
            response_time_ms = max(to_milliseconds(100 * MILLISECOND + self.latest_rtt), 1)
            alpha = 0.5 * min(to_milliseconds(now - self.last_update) / response_time_ms, 1.0)
            step = int(max(1000.0, alpha * expected_packet_size_bits))
            self.last_update = now
            return int(min(float(self.target + step), 1.5 * received))

        eta = math.pow(1.08, min(to_milliseconds(now - self.last_update) / 1000, 1.0))
        self.last_update = now
        rate = int(eta * self.target)

        # never exceed 1.5 times the received rate
        received_limit = int(1.5 * received)
        if rate > received_limit > self.target:
            return received_limit
        if rate < self.target:
            return self.target
        return rate

    def decrease(self) -> int:
        """Proposed target after a decrease; updates the decrease average."""
        target = int(BETA * self.latest_received_rate)
        self.latest_decrease_rate.update(float(self.latest_received_rate))
        self.last_update = self._clock()
        return target