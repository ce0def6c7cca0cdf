"""Turns arrival groups into delay gradient estimates."""

from __future__ import annotations

from typing import Callable, Iterable, Iterator, Optional

from .arrival_group import ArrivalGroup, inter_group_delay_variation
from .common import DelayStats


class SlopeEstimator:
    """Feeds inter-group delay variations into an estimator such as ``Kalman.update_estimate``."""

    def __init__(self, estimator: Callable[[int], int]) -> None:
        self._estimator = estimator

    def run(self, groups: Iterable[ArrivalGroup]) -> Iterator[DelayStats]:
        """Yield one DelayStats per group after the first."""
        last: Optional[ArrivalGroup] = None
        for group in groups:
            if last is None:
                last = group
                continue
            measurement = inter_group_delay_variation(last, group)
            delta = group.arrival - last.arrival
            last = group
            yield DelayStats(
                measurement=measurement,
                estimate=self._estimator(measurement),
                last_receive_delta=delta,
            )