"""RTCP packets used by the interceptors: sender reports and TWCC feedback."""

from __future__ import annotations

import itertools
import struct
from dataclasses import dataclass, field
from typing import Iterable, Union

TYPE_SENDER_REPORT = 200
TYPE_TRANSPORT_SPECIFIC_FEEDBACK = 205
FORMAT_TCC = 15

TYPE_TCC_RUN_LENGTH_CHUNK = 0
TYPE_TCC_STATUS_VECTOR_CHUNK = 1

TYPE_TCC_SYMBOL_SIZE_ONE_BIT = 0
TYPE_TCC_SYMBOL_SIZE_TWO_BIT = 1

TYPE_TCC_PACKET_NOT_RECEIVED = 0
TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA = 1
TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA = 2
TYPE_TCC_PACKET_RECEIVED_WITHOUT_DELTA = 3

TYPE_TCC_DELTA_SCALE_FACTOR = 250


class RTCPError(ValueError):
    """Raised when RTCP data cannot be encoded or decoded."""


def _header(count: int, packet_type: int, body_len: int, padding: bool = False) -> bytes:
    first = 0x80 | (0x20 if padding else 0) | (count & 0x1F)
    return struct.pack("!BBH", first, packet_type, (4 + body_len) // 4 - 1)


def _parse_header(data: bytes) -> tuple[int, int, bytes, int]:
    """Return count, packet type, body without padding and total size."""
    if len(data) < 4:
        raise RTCPError("packet too short")
    first, packet_type, length = struct.unpack_from("!BBH", data)
    if first >> 6 != 2:
        raise RTCPError("invalid RTCP version")
    size = (length + 1) * 4
    if len(data) < size:
        raise RTCPError("packet shorter than its length field")
    body = bytes(data[4:size])
    if first & 0x20:
        if not body or body[-1] == 0 or body[-1] > len(body):
            raise RTCPError("invalid RTCP padding")
        body = body[:-body[-1]]
    return first & 0x1F, packet_type, body, size


@dataclass
class RecvDelta:
    """Receive time delta of one packet, in microseconds."""

    type: int = TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA
    delta: int = 0

    def _marshal(self) -> bytes:
        scaled = self.delta // TYPE_TCC_DELTA_SCALE_FACTOR
        if self.type == TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA:
            if not 0 <= scaled <= 0xFF:
                raise RTCPError("small delta out of range")
            return bytes([scaled])
        if self.type == TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA:
            if not -0x8000 <= scaled <= 0x7FFF:
                raise RTCPError("large delta out of range")
            return struct.pack("!h", scaled)
        raise RTCPError("delta type carries no delta")


@dataclass
class RunLengthChunk:
    """A run of packets sharing one status symbol."""

    packet_status_symbol: int = 0
    run_length: int = 0
    type: int = TYPE_TCC_RUN_LENGTH_CHUNK

    def _marshal(self) -> bytes:
        if not 0 <= self.run_length < 1 << 13:
            raise RTCPError("run length out of range")
        return struct.pack("!H", (self.packet_status_symbol & 0x03) << 13 | self.run_length)

    def _symbols(self) -> Iterable[int]:
        return itertools.repeat(self.packet_status_symbol, self.run_length)


@dataclass
class StatusVectorChunk:
    """A vector of one- or two-bit packet status symbols."""

    symbol_size: int = TYPE_TCC_SYMBOL_SIZE_ONE_BIT
    symbol_list: list[int] = field(default_factory=list)
    type: int = TYPE_TCC_STATUS_VECTOR_CHUNK

    def _marshal(self) -> bytes:
        value = 1 << 15
        if self.symbol_size == TYPE_TCC_SYMBOL_SIZE_ONE_BIT:
            if len(self.symbol_list) > 14:
                raise RTCPError("too many one-bit symbols")
            for pos, symbol in enumerate(self.symbol_list):
                value |= (symbol & 0x01) << (13 - pos)
        else:
            if len(self.symbol_list) > 7:
                raise RTCPError("too many two-bit symbols")
            value |= 1 << 14
            for pos, symbol in enumerate(self.symbol_list):
                value |= (symbol & 0x03) << (12 - 2 * pos)
        return struct.pack("!H", value)

    def _symbols(self) -> Iterable[int]:
        return iter(self.symbol_list)


PacketStatusChunk = Union[RunLengthChunk, StatusVectorChunk]


def _parse_chunk(value: int) -> PacketStatusChunk:
    if value >> 15 == 0:
        return RunLengthChunk((value >> 13) & 0x03, value & 0x1FFF)
    if (value >> 14) & 0x01 == TYPE_TCC_SYMBOL_SIZE_ONE_BIT:
        return StatusVectorChunk(
            TYPE_TCC_SYMBOL_SIZE_ONE_BIT, [(value >> (13 - i)) & 0x01 for i in range(14)]
        )
    return StatusVectorChunk(
        TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [(value >> (12 - 2 * i)) & 0x03 for i in range(7)]
    )


@dataclass
class TransportLayerCC:
    """Transport-wide congestion control feedback."""

    sender_ssrc: int = 0
    media_ssrc: int = 0
    base_sequence_number: int = 0
    packet_status_count: int = 0
    reference_time: int = 0
    fb_pkt_count: int = 0
    packet_chunks: list[PacketStatusChunk] = field(default_factory=list)
    recv_deltas: list[RecvDelta] = field(default_factory=list)

    def marshal(self) -> bytes:
        body = bytearray(struct.pack(
            "!IIHHI", self.sender_ssrc, self.media_ssrc, self.base_sequence_number,
            self.packet_status_count,
            (self.reference_time & 0xFFFFFF) << 8 | (self.fb_pkt_count & 0xFF),
        ))
        for chunk in self.packet_chunks:
            body += chunk._marshal()
        for delta in self.recv_deltas:
            body += delta._marshal()
        pad = -len(body) % 4
        if pad:
            body += bytes(pad - 1) + bytes([pad])
        return _header(FORMAT_TCC, TYPE_TRANSPORT_SPECIFIC_FEEDBACK, len(body), bool(pad)) + bytes(body)

    @classmethod
    def unmarshal(cls, data: bytes) -> TransportLayerCC:
        count, packet_type, body, _ = _parse_header(data)
        if packet_type != TYPE_TRANSPORT_SPECIFIC_FEEDBACK or count != FORMAT_TCC:
            raise RTCPError("not a transport-cc feedback packet")
        if len(body) < 16:
            raise RTCPError("transport-cc feedback too short")
        sender, media, base, status_count, ref = struct.unpack_from("!IIHHI", body)
        offset = 16
        chunks: list[PacketStatusChunk] = []
        processed = 0
        while processed < status_count:
            if offset + 2 > len(body):
                raise RTCPError("transport-cc feedback too short for chunks")
            chunk = _parse_chunk(struct.unpack_from("!H", body, offset)[0])
            offset += 2
            chunks.append(chunk)
            processed += chunk.run_length if isinstance(chunk, RunLengthChunk) else len(chunk.symbol_list)
        symbols = itertools.islice(
            itertools.chain.from_iterable(c._symbols() for c in chunks), status_count
        )
        deltas = []
        for symbol in symbols:
            if symbol == TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA:
                if offset + 1 > len(body):
                    raise RTCPError("transport-cc feedback too short for deltas")
                deltas.append(RecvDelta(symbol, body[offset] * TYPE_TCC_DELTA_SCALE_FACTOR))
                offset += 1
            elif symbol == TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA:
                if offset + 2 > len(body):
                    raise RTCPError("transport-cc feedback too short for deltas")
                value = struct.unpack_from("!h", body, offset)[0]
                deltas.append(RecvDelta(symbol, value * TYPE_TCC_DELTA_SCALE_FACTOR))
                offset += 2
        return cls(sender, media, base, status_count, ref >> 8, ref & 0xFF, chunks, deltas)


@dataclass
class SenderReport:
    """RTCP sender report; reception report blocks are kept as raw 24-byte blocks."""

    ssrc: int = 0
    ntp_time: int = 0
    rtp_time: int = 0
    packet_count: int = 0
    octet_count: int = 0
    reports: list[bytes] = field(default_factory=list)
    profile_extensions: bytes = b""

    def marshal(self) -> bytes:
        if len(self.reports) > 31:
            raise RTCPError("too many reception reports")
        if any(len(r) != 24 for r in self.reports):
            raise RTCPError("reception report blocks must be 24 bytes")
        if len(self.profile_extensions) % 4:
            raise RTCPError("profile extensions must be a multiple of 4 bytes")
        body = struct.pack("!IQIII", self.ssrc, self.ntp_time, self.rtp_time,
                           self.packet_count, self.octet_count)
        body += b"".join(bytes(r) for r in self.reports) + bytes(self.profile_extensions)
        return _header(len(self.reports), TYPE_SENDER_REPORT, len(body)) + body

    @classmethod
    def unmarshal(cls, data: bytes) -> SenderReport:
        count, packet_type, body, _ = _parse_header(data)
        if packet_type != TYPE_SENDER_REPORT:
            raise RTCPError("not a sender report")
        end = 24 + 24 * count
        if len(body) < end:
            raise RTCPError("sender report too short")
        fields = struct.unpack_from("!IQIII", body)
        reports = [body[pos:pos + 24] for pos in range(24, end, 24)]
        return cls(*fields, reports=reports, profile_extensions=body[end:])


@dataclass
class RawPacket:
    """An RTCP packet of a type that is not decoded further."""

    data: bytes = b""

    def marshal(self) -> bytes:
        return bytes(self.data)


Packet = Union[TransportLayerCC, SenderReport, RawPacket]


def unmarshal(data: bytes) -> list[Packet]:
    """Decode a compound RTCP packet into its packets."""
    data = bytes(data or b"")
    if not data:
        raise RTCPError("packet too short")
    packets: list[Packet] = []
    offset = 0
    while offset < len(data):
        count, packet_type, _, size = _parse_header(data[offset:])
        chunk = data[offset:offset + size]
        if packet_type == TYPE_SENDER_REPORT:
            packets.append(SenderReport.unmarshal(chunk))
        elif packet_type == TYPE_TRANSPORT_SPECIFIC_FEEDBACK and count == FORMAT_TCC:
            packets.append(TransportLayerCC.unmarshal(chunk))
        else:
            packets.append(RawPacket(chunk))
        offset += size
    return packets


def marshal(packets: Iterable[Packet]) -> bytes:
    """Encode packets into one compound RTCP packet."""
    return b"".join(p.marshal() for p in packets)