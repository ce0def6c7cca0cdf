"""Grouping of acknowledged packets into arrival groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from ..twcc_feedback import Acknowledgment
from .common import MILLISECOND


@dataclass
class ArrivalGroup:
    """Packets sent in one burst; times are those of the last packet added."""

    packets: list[Acknowledgment] = field(default_factory=list)
    departure: int = 0
    arrival: int = 0
    rtt: int = 0

    def add(self, ack: Acknowledgment) -> None:
        """Append ``ack`` and take over its times."""
        self.packets.append(ack)
        self.arrival = ack.arrival
        self.departure = ack.departure
        self.rtt = ack.rtt

    def __str__(self) -> str:
        packets = "".join(str(p) for p in self.packets)
        return (
            "ARRIVALGROUP:\n"
            f"\tARRIVAL:\t{int(self.arrival / 1e6)}\n"
            f"\tDEPARTURE:\t{int(self.departure / 1e6)}\n"
            f"\tRTT:\t{self.rtt / 1e6}ms\n"
            f"\tPACKETS:\n{packets}\n"
        )


def inter_arrival_time_pkt(group: ArrivalGroup, ack: Acknowledgment) -> int:
    """Time between the group's arrival and the packet's arrival."""
    return ack.arrival - group.arrival


def inter_departure_time_pkt(group: ArrivalGroup, ack: Acknowledgment) -> int:
    """Time between the departure of the group's last packet and the packet's departure."""
    if not group.packets:
        return 0
    return ack.departure - group.packets[-1].departure


def inter_group_delay_variation_pkt(group: ArrivalGroup, ack: Acknowledgment) -> int:
    """Difference between inter-arrival and inter-departure time of the packet."""
    return (ack.arrival - group.arrival) - (ack.departure - group.departure)


def inter_group_delay_variation(first: ArrivalGroup, second: ArrivalGroup) -> int:
    """Difference between inter-arrival and inter-departure time of two groups."""
    return (second.arrival - first.arrival) - (second.departure - first.departure)


class ArrivalGroupAccumulator:
    """Collects acknowledgments into arrival groups."""

    def __init__(
        self,
        *,
        inter_departure_threshold: int = 5 * MILLISECOND,
        inter_arrival_threshold: int = 5 * MILLISECOND,
        inter_group_delay_variation_threshold: int = 0,
    ) -> None:
        self.inter_departure_threshold = inter_departure_threshold
        self.inter_arrival_threshold = inter_arrival_threshold
        self.inter_group_delay_variation_threshold = inter_group_delay_variation_threshold

    def run(self, acks: Iterable[Acknowledgment]) -> Iterator[ArrivalGroup]:
        """Yield each group once a packet starting the next group arrives.

        Packets arriving before the current group are ignored, as are packets that
        did not depart after it. The last, still open, group is never yielded.
        """
        group: ArrivalGroup | None = None
        for ack in acks:
            if group is None:
                group = ArrivalGroup()
                group.add(ack)
                continue
            if ack.arrival < group.arrival:
                continue
            if ack.departure <= group.departure:
                continue
            if inter_departure_time_pkt(group, ack) <= self.inter_departure_threshold:
                group.add(ack)
                continue
            if (
                inter_arrival_time_pkt(group, ack) <= self.inter_arrival_threshold
                and inter_group_delay_variation_pkt(group, ack)
                < self.inter_group_delay_variation_threshold
            ):
                group.add(ack)
                continue
            yield group
            group = ArrivalGroup()
            group.add(ack)