"""RTP header, packet and transport-wide congestion control extension."""

from __future__ import annotations

import copy
import struct
from dataclasses import dataclass, field

HEADER_LENGTH = 12
EXTENSION_PROFILE_ONE_BYTE = 0xBEDE
EXTENSION_PROFILE_TWO_BYTE = 0x1000


class RTPError(ValueError):
    """Raised when RTP data cannot be encoded or decoded."""


@dataclass
class Extension:
    """A single RTP header extension element."""

    id: int
    payload: bytes


def _parse_extensions(profile: int, body: bytes) -> list[Extension]:
    extensions = []
    pos = 0
    if profile == EXTENSION_PROFILE_ONE_BYTE:
        while pos < len(body):
            byte = body[pos]
            pos += 1
            if byte == 0:
                continue
            ext_id, length = byte >> 4, (byte & 0x0F) + 1
            if ext_id == 15:
                break
            if pos + length > len(body):
                raise RTPError("header extension too short")
            extensions.append(Extension(ext_id, bytes(body[pos:pos + length])))
            pos += length
    elif profile == EXTENSION_PROFILE_TWO_BYTE:
        while pos < len(body):
            ext_id = body[pos]
            if ext_id == 0:
                pos += 1
                continue
            if pos + 1 >= len(body):
                raise RTPError("header extension too short")
            length = body[pos + 1]
            pos += 2
            if pos + length > len(body):
                raise RTPError("header extension too short")
            extensions.append(Extension(ext_id, bytes(body[pos:pos + length])))
            pos += length
    else:
        extensions.append(Extension(0, bytes(body)))
    return extensions


@dataclass
class Header:
    """An RTP fixed header together with its extensions."""

    version: int = 2
    padding: bool = False
    extension: bool = False
    marker: bool = False
    payload_type: int = 0
    sequence_number: int = 0
    timestamp: int = 0
    ssrc: int = 0
    csrc: list[int] = field(default_factory=list)
    extension_profile: int = 0
    extensions: list[Extension] = field(default_factory=list)

    def _extension_body(self) -> bytes:
        body = bytearray()
        if self.extension_profile == EXTENSION_PROFILE_ONE_BYTE:
            for ext in self.extensions:
                if not 1 <= len(ext.payload) <= 16:
                    raise RTPError("one-byte extension payload must be 1..16 bytes")
                body.append((ext.id << 4) | (len(ext.payload) - 1))
                body += ext.payload
        elif self.extension_profile == EXTENSION_PROFILE_TWO_BYTE:
            for ext in self.extensions:
                body += bytes([ext.id, len(ext.payload)]) + ext.payload
        else:
            if len(self.extensions) != 1:
                raise RTPError("RFC 3550 extension requires exactly one element")
            if len(self.extensions[0].payload) % 4:
                raise RTPError("RFC 3550 extension payload must be a multiple of 4")
            body += self.extensions[0].payload
        body += bytes(-len(body) % 4)
        return bytes(body)

    def marshal(self) -> bytes:
        """Encode the header to wire format."""
        if len(self.csrc) > 15:
            raise RTPError("too many CSRC identifiers")
        first = (
            (self.version & 0x03) << 6
            | int(self.padding) << 5
            | int(self.extension) << 4
            | len(self.csrc)
        )
        second = int(self.marker) << 7 | (self.payload_type & 0x7F)
        buf = bytearray(
            struct.pack("!BBHII", first, second, self.sequence_number,
                        self.timestamp, self.ssrc)
        )
        for source in self.csrc:
            buf += struct.pack("!I", source)
        if self.extension:
            body = self._extension_body()
            buf += struct.pack("!HH", self.extension_profile, len(body) // 4) + body
        return bytes(buf)

    @classmethod
    def _parse(cls, data: bytes) -> tuple[Header, int]:
        data = bytes(data or b"")
        if len(data) < HEADER_LENGTH:
            raise RTPError("RTP header size insufficient")
        first, second, seq, ts, ssrc = struct.unpack_from("!BBHII", data)
        csrc_count = first & 0x0F
        offset = HEADER_LENGTH + 4 * csrc_count
        if len(data) < offset:
            raise RTPError("RTP header size insufficient for CSRC list")
        csrc = list(struct.unpack_from(f"!{csrc_count}I", data, HEADER_LENGTH))
        has_extension = bool(first & 0x10)
        profile = 0
        extensions: list[Extension] = []
        if has_extension:
            if len(data) < offset + 4:
                raise RTPError("RTP header size insufficient for extension")
            profile, words = struct.unpack_from("!HH", data, offset)
            offset += 4
            end = offset + 4 * words
            if len(data) < end:
                raise RTPError("RTP header size insufficient for extension")
            extensions = _parse_extensions(profile, data[offset:end])
            offset = end
        header = cls(
            version=first >> 6,
            padding=bool(first & 0x20),
            extension=has_extension,
            marker=bool(second & 0x80),
            payload_type=second & 0x7F,
            sequence_number=seq,
            timestamp=ts,
            ssrc=ssrc,
            csrc=csrc,
            extension_profile=profile,
            extensions=extensions,
        )
        return header, offset

    @classmethod
    def unmarshal(cls, data: bytes) -> Header:
        """Decode a header from the start of ``data``."""
        return cls._parse(data)[0]

    def marshal_size(self) -> int:
        """Number of bytes :meth:`marshal` produces."""
        size = HEADER_LENGTH + 4 * len(self.csrc)
        if self.extension:
            size += 4 + len(self._extension_body())
        return size

    def get_extension(self, ext_id: int) -> bytes | None:
        """Return the payload of extension ``ext_id`` or None."""
        if not self.extension:
            return None
        return next((e.payload for e in self.extensions if e.id == ext_id), None)

    def set_extension(self, ext_id: int, payload: bytes) -> None:
        """Add or replace the extension element ``ext_id``."""
        payload = bytes(payload)
        if self.extension:
            if self.extension_profile == EXTENSION_PROFILE_ONE_BYTE:
                if not 1 <= ext_id <= 14:
                    raise RTPError("one-byte extension id must be 1..14")
                if not 1 <= len(payload) <= 16:
                    raise RTPError("one-byte extension payload must be 1..16 bytes")
            elif self.extension_profile == EXTENSION_PROFILE_TWO_BYTE:
                if not 1 <= ext_id <= 255:
                    raise RTPError("two-byte extension id must be 1..255")
                if len(payload) > 255:
                    raise RTPError("two-byte extension payload too long")
            elif ext_id != 0:
                raise RTPError("RFC 3550 extension id must be 0")
            for ext in self.extensions:
                if ext.id == ext_id:
                    ext.payload = payload
                    return
            self.extensions.append(Extension(ext_id, payload))
            return
        if len(payload) <= 16:
            if not 1 <= ext_id <= 14:
                raise RTPError("one-byte extension id must be 1..14")
            self.extension_profile = EXTENSION_PROFILE_ONE_BYTE
        elif len(payload) < 256:
            if not 1 <= ext_id <= 255:
                raise RTPError("two-byte extension id must be 1..255")
            self.extension_profile = EXTENSION_PROFILE_TWO_BYTE
        else:
            raise RTPError("extension payload too long")
        self.extension = True
        self.extensions = [Extension(ext_id, payload)]

    def clone(self) -> Header:
        """Return a deep copy of the header."""
        return copy.deepcopy(self)


@dataclass
class Packet:
    """An RTP packet: header, payload and optional padding."""

    header: Header = field(default_factory=Header)
    payload: bytes = b""
    padding_size: int = 0

    def marshal(self) -> bytes:
        """Encode the packet to wire format."""
        if not 0 <= self.padding_size <= 255:
            raise RTPError("invalid padding size")
        header = copy.copy(self.header)
        header.padding = self.padding_size > 0
        data = header.marshal() + bytes(self.payload)
        if self.padding_size:
            data += bytes(self.padding_size - 1) + bytes([self.padding_size])
        return data

    @classmethod
    def unmarshal(cls, data: bytes) -> Packet:
        """Decode a packet from ``data``."""
        header, offset = Header._parse(data)
        payload = bytes(data[offset:])
        padding_size = 0
        if header.padding:
            if not payload or payload[-1] == 0 or payload[-1] > len(payload):
                raise RTPError("invalid RTP padding")
            padding_size = payload[-1]
            payload = payload[:-padding_size]
        return cls(header=header, payload=payload, padding_size=padding_size)


@dataclass
class TransportCCExtension:
    """Transport-wide sequence number carried in a header extension."""

    transport_sequence: int = 0

    def marshal(self) -> bytes:
        return struct.pack("!H", self.transport_sequence)

    @classmethod
    def unmarshal(cls, data: bytes | None) -> TransportCCExtension:
        if data is None or len(data) < 2:
            raise RTPError("transport-cc extension too short")
        return cls(struct.unpack_from("!H", data)[0])