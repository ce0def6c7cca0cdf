"""Interceptor interface, attribute store, chaining and pass-through interceptor."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence

from . import rtcp
from .errors import flatten_errors
from .rtp import Header

RTP_HEADER_KEY = "rtpinterceptor.rtp_header"
RTCP_PACKETS_KEY = "rtpinterceptor.rtcp_packets"


class InvalidAttributeTypeError(TypeError):
    """An attribute holds a value of an unexpected type."""

    def __init__(self) -> None:
        super().__init__("found value of invalid type in attributes map")


class Attributes(dict):
    """Generic key/value store passed along with packets."""

    def get_rtp_header(self, raw: Optional[bytes]) -> Header:
        """Return the cached RTP header, decoding and caching it from ``raw`` if absent."""
        if RTP_HEADER_KEY in self:
            value = self[RTP_HEADER_KEY]
            if isinstance(value, Header):
                return value
            raise InvalidAttributeTypeError()
        header = Header.unmarshal(bytes(raw or b""))
        self[RTP_HEADER_KEY] = header
        return header

    def get_rtcp_packets(self, raw: Optional[bytes]) -> list:
        """Return the cached RTCP packets, decoding and caching them from ``raw`` if absent."""
        if RTCP_PACKETS_KEY in self:
            value = self[RTCP_PACKETS_KEY]
            if isinstance(value, list):
                return value
            raise InvalidAttributeTypeError()
        packets = rtcp.unmarshal(bytes(raw or b""))
        self[RTCP_PACKETS_KEY] = packets
        return packets


@dataclass
class RTPHeaderExtension:
    uri: str = ""
    id: int = 0


@dataclass
class RTCPFeedback:
    type: str = ""
    parameter: str = ""


@dataclass
class StreamInfo:
    """Description of a stream bound to an interceptor."""

    ssrc: int = 0
    rtp_header_extensions: list[RTPHeaderExtension] = field(default_factory=list)
    rtcp_feedback: list[RTCPFeedback] = field(default_factory=list)


class RTPWriter(Protocol):
    def write(self, header: Header, payload: bytes, attributes: Optional[Attributes]) -> int: ...


class RTPReader(Protocol):
    def read(self, data: bytes, attributes: Optional[Attributes]) -> tuple[int, Optional[Attributes]]: ...


class RTCPWriter(Protocol):
    def write(self, packets: Sequence[Any], attributes: Optional[Attributes]) -> int: ...


class RTCPReader(Protocol):
    def read(self, data: bytes, attributes: Optional[Attributes]) -> tuple[int, Optional[Attributes]]: ...


@dataclass(frozen=True)
class RTPWriterFunc:
    func: Callable[[Header, bytes, Optional[Attributes]], int]

    def write(self, header, payload, attributes):
        return self.func(header, payload, attributes)


@dataclass(frozen=True)
class RTPReaderFunc:
    func: Callable[[bytes, Optional[Attributes]], tuple]

    def read(self, data, attributes):
        return self.func(data, attributes)


@dataclass(frozen=True)
class RTCPWriterFunc:
    func: Callable[[Sequence[Any], Optional[Attributes]], int]

    def write(self, packets, attributes):
        return self.func(packets, attributes)


@dataclass(frozen=True)
class RTCPReaderFunc:
    func: Callable[[bytes, Optional[Attributes]], tuple]

    def read(self, data, attributes):
        return self.func(data, attributes)


class Interceptor(abc.ABC):
    """Modifies incoming and outgoing RTP/RTCP packets or sends its own."""

    @abc.abstractmethod
    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader:
        """Wrap the reader of incoming RTCP packet batches."""

    @abc.abstractmethod
    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        """Wrap the writer of outgoing RTCP packet batches."""

    @abc.abstractmethod
    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        """Wrap the writer of an outgoing RTP stream."""

    @abc.abstractmethod
    def unbind_local_stream(self, info: StreamInfo) -> None:
        """Release data held for an outgoing stream."""

    @abc.abstractmethod
    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        """Wrap the reader of an incoming RTP stream."""

    @abc.abstractmethod
    def unbind_remote_stream(self, info: StreamInfo) -> None:
        """Release data held for an incoming stream."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release all resources."""


class NoOp(Interceptor):
    """Interceptor that leaves every packet untouched; a base for partial interceptors."""

    def bind_rtcp_reader(self, reader):
        return reader

    def bind_rtcp_writer(self, writer):
        return writer

    def bind_local_stream(self, info, writer):
        return writer

    def unbind_local_stream(self, info):
        pass

    def bind_remote_stream(self, info, reader):
        return reader

    def unbind_remote_stream(self, info):
        pass

    def close(self):
        pass


class Chain(Interceptor):
    """Runs child interceptors in order."""

    def __init__(self, interceptors: Sequence[Interceptor]):
        self.interceptors = list(interceptors)

    def bind_rtcp_reader(self, reader):
        for child in self.interceptors:
            reader = child.bind_rtcp_reader(reader)
        return reader

    def bind_rtcp_writer(self, writer):
        for child in self.interceptors:
            writer = child.bind_rtcp_writer(writer)
        return writer

    def bind_local_stream(self, info, writer):
        for child in self.interceptors:
            writer = child.bind_local_stream(info, writer)
        return writer

    def unbind_local_stream(self, info):
        for child in self.interceptors:
            child.unbind_local_stream(info)

    def bind_remote_stream(self, info, reader):
        for child in self.interceptors:
            reader = child.bind_remote_stream(info, reader)
        return reader

    def unbind_remote_stream(self, info):
        for child in self.interceptors:
            child.unbind_remote_stream(info)

    def close(self):
        """Close every child; raise a MultiError of the failures, if any."""
        errors = []
        for child in self.interceptors:
            try:
                child.close()
            except Exception as exc:  # noqa: BLE001 - collected and re-raised
                errors.append(exc)
        error = flatten_errors(errors)
        if error is not None:
            raise error