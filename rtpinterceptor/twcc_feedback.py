"""Conversion of transport-wide congestion control feedback into acknowledgments.

Timestamps and durations are integers in nanoseconds. A timestamp of 0 is the
zero time: for an arrival it means the packet was not reported as received.
"""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from .rtcp import (
    TYPE_TCC_PACKET_NOT_RECEIVED,
    RecvDelta,
    RunLengthChunk,
    StatusVectorChunk,
    TransportLayerCC,
)
from .rtp import Header, RTPError, TransportCCExtension

TWCC_EXTENSION_ATTRIBUTES_KEY = "rtpinterceptor.twcc_extension_id"

_MICROSECOND = 1_000
_MILLISECOND = 1_000_000
_SEQUENCE_MASK = 0xFFFF


class MissingTWCCExtensionIDError(ValueError):
    """The attributes carry no transport-wide CC header extension id."""

    def __init__(self) -> None:
        super().__init__("missing transport layer cc header extension id")


class MissingTWCCExtensionError(ValueError):
    """The RTP header carries no valid transport-wide CC extension."""

    def __init__(self) -> None:
        super().__init__("missing transport layer cc header extension")


class InvalidFeedbackError(ValueError):
    """The feedback is inconsistent with itself or with the sent packets."""

    def __init__(self) -> None:
        super().__init__("invalid feedback")


@dataclass(frozen=True)
class Acknowledgment:
    """A sent packet and, if known, when it arrived."""

    tlcc: int = 0
    size: int = 0
    departure: int = 0
    arrival: int = 0
    rtt: int = 0

    def __str__(self) -> str:
        return (
            "ACK:\n"
            f"\tTLCC:\t{self.tlcc}\n"
            f"\tSIZE:\t{self.size}\n"
            f"\tDEPARTURE:\t{int(self.departure / 1e6)}\n"
            f"\tARRIVAL:\t{int(self.arrival / 1e6)}\n"
            f"\tRTT:\t{self.rtt / 1e6}ms\n"
        )


class FeedbackAdapter:
    """Records sent packets and maps TWCC feedback onto them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._history: dict[int, Acknowledgment] = {}

    def on_sent(self, ts: int, header: Header, size: int, attributes: Optional[dict]) -> None:
        """Record that the packet with ``header`` and a payload of ``size`` bytes left at ``ts``."""
        ext_id = attributes.get(TWCC_EXTENSION_ATTRIBUTES_KEY) if attributes is not None else None
        if isinstance(ext_id, bool) or not isinstance(ext_id, int) or not 0 <= ext_id <= 0xFF:
            raise MissingTWCCExtensionIDError()
        try:
            extension = TransportCCExtension.unmarshal(header.get_extension(ext_id))
        except RTPError as exc:
            raise MissingTWCCExtensionError() from exc

        sequence = extension.transport_sequence
        with self._lock:
            self._history[sequence] = Acknowledgment(
                tlcc=sequence,
                size=header.marshal_size() + size,
                departure=ts,
            )

    def _unpack_symbols(
        self,
        ts: int,
        start: int,
        ref_time: int,
        symbols: Sequence[int],
        deltas: Sequence[RecvDelta],
    ) -> tuple[int, int, list[Acknowledgment]]:
        result = []
        consumed = 0
        for offset, symbol in enumerate(symbols):
            ack = self._history.get((start + offset) & _SEQUENCE_MASK)
            if ack is None:
                result.append(Acknowledgment())
                continue
            if symbol != TYPE_TCC_PACKET_NOT_RECEIVED:
                if consumed >= len(deltas):
                    raise InvalidFeedbackError()
                ref_time += deltas[consumed].delta * _MICROSECOND
                ack = dataclasses.replace(ack, arrival=ref_time, rtt=ts - ack.departure)
                consumed += 1
            result.append(ack)
        return consumed, ref_time, result

    def unpack_run_length_chunk(
        self,
        ts: int,
        start: int,
        ref_time: int,
        chunk: RunLengthChunk,
        deltas: Sequence[RecvDelta],
    ) -> tuple[int, int, list[Acknowledgment]]:
        """Return the deltas consumed, the new reference time and one ack per packet of the run."""
        symbols = [chunk.packet_status_symbol] * chunk.run_length
        return self._unpack_symbols(ts, start, ref_time, symbols, deltas)

    def unpack_status_vector_chunk(
        self,
        ts: int,
        start: int,
        ref_time: int,
        chunk: StatusVectorChunk,
        deltas: Sequence[RecvDelta],
    ) -> tuple[int, int, list[Acknowledgment]]:
        """Return the deltas consumed, the new reference time and one ack per symbol."""
        return self._unpack_symbols(ts, start, ref_time, chunk.symbol_list, deltas)

    def on_transport_cc_feedback(self, ts: int, feedback: TransportLayerCC) -> list[Acknowledgment]:
        """Convert TWCC feedback received at ``ts`` into acknowledgments."""
        with self._lock:
            result: list[Acknowledgment] = []
            index = feedback.base_sequence_number
            ref_time = feedback.reference_time * 64 * _MILLISECOND
            deltas = list(feedback.recv_deltas)

            for chunk in feedback.packet_chunks:
                if isinstance(chunk, RunLengthChunk):
                    unpack = self.unpack_run_length_chunk
                elif isinstance(chunk, StatusVectorChunk):
                    unpack = self.unpack_status_vector_chunk
                else:
                    raise InvalidFeedbackError()
                consumed, ref_time, acks = unpack(ts, index, ref_time, chunk, deltas)
                result.extend(acks)
                deltas = deltas[consumed:]
                index = (index + len(acks)) & _SEQUENCE_MASK
            return result