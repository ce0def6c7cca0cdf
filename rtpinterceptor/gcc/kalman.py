"""Scalar Kalman filter estimating the slope of the inter-group delay."""

from __future__ import annotations

import math
from typing import Optional

from .common import MILLISECOND, to_microseconds

CHI = 0.001


class Kalman:
    """Kalman filter over durations in nanoseconds."""

    def __init__(
        self,
        *,
        estimate: int = 0,
        process_uncertainty: float = 1e-3,
        estimate_error: Optional[float] = None,
        measurement_uncertainty: float = 0.0,
        disable_measurement_uncertainty_updates: bool = False,
    ) -> None:
        """``estimate_error`` is a standard deviation; its variance is kept."""
        self.gain = 0.0
        self.estimate = estimate
        self.process_uncertainty = process_uncertainty
        self.estimate_error = 0.1 if estimate_error is None else estimate_error * estimate_error
        self.measurement_uncertainty = measurement_uncertainty
        self.disable_measurement_uncertainty_updates = disable_measurement_uncertainty_updates

    def update_estimate(self, measurement: int) -> int:
        """Feed one measurement and return the new estimate."""
        z = measurement - self.estimate
        zms = to_microseconds(z) / 1000.0

        if not self.disable_measurement_uncertainty_updates:
            alpha = math.pow(1 - CHI, 30.0 / (1000.0 * 5 * float(MILLISECOND)))
            root3 = 3 * math.sqrt(self.measurement_uncertainty)
            if zms > root3:
                self.measurement_uncertainty = max(
                    alpha * self.measurement_uncertainty + (1 - alpha) * root3 * root3, 1
                )
            self.measurement_uncertainty = max(
                alpha * self.measurement_uncertainty + (1 - alpha) * zms * zms, 1
            )

        estimate_uncertainty = self.estimate_error + self.process_uncertainty
        self.gain = estimate_uncertainty / (estimate_uncertainty + self.measurement_uncertainty)
        self.estimate += int(self.gain * zms * float(MILLISECOND))
        self.estimate_error = (1 - self.gain) * estimate_uncertainty
        return self.estimate