"""Packet pacers that forward RTP packets to the writer registered for their SSRC."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..rtp import Header
from .common import MILLISECOND, to_milliseconds

_log = logging.getLogger(__name__)


class UnknownStreamError(LookupError):
    """A packet was written for an SSRC no stream was added for."""

    def __init__(self, ssrc: int) -> None:
        super().__init__(f"unknown ssrc: {ssrc}")
        self.ssrc = ssrc


class NoOpPacer:
    """Pacer that sends every packet immediately."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._writers: dict[int, Any] = {}

    def add_stream(self, ssrc: int, writer: Any) -> None:
        """Route packets with ``ssrc`` to ``writer``."""
        with self._lock:
            self._writers[ssrc] = writer

    def set_target_bitrate(self, rate: int) -> None:
        """Ignored: this pacer does not limit the rate."""

    def write(self, header: Header, payload: bytes, attributes: Optional[dict]) -> int:
        """Send the packet through the writer of its stream."""
        with self._lock:
            writer = self._writers.get(header.ssrc)
            if writer is None:
                raise UnknownStreamError(header.ssrc)
            return writer.write(header, payload, attributes)

    def close(self) -> None:
        """Nothing to release."""


@dataclass
class _Item:
    header: Header
    payload: bytes
    attributes: Optional[dict]


class LeakyBucketPacer:
    """Leaky bucket pacer sending queued packets on a background thread.

    The pacer may exceed the target bitrate set by :meth:`set_target_bitrate` by
    a factor of 1.5. Durations are in nanoseconds.
    """

    factor = 1.5

    def __init__(
        self,
        initial_bitrate: int,
        *,
        pacing_interval: int = 5 * MILLISECOND,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.pacing_interval = pacing_interval
        self._clock = clock
        self._target_bitrate = initial_bitrate
        self._bitrate_lock = threading.Lock()
        self._queue: deque[_Item] = deque()
        self._queue_lock = threading.Lock()
        self._writers: dict[int, Any] = {}
        self._writer_lock = threading.Lock()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()

    @property
    def target_bitrate(self) -> int:
        """Bitrate in bits per second the pacer currently sends at."""
        with self._bitrate_lock:
            return self._target_bitrate

    def add_stream(self, ssrc: int, writer: Any) -> None:
        """Route packets with ``ssrc`` to ``writer``."""
        with self._writer_lock:
            self._writers[ssrc] = writer

    def set_target_bitrate(self, rate: int) -> None:
        """Set the target bitrate; the pacer allows up to 1.5 times ``rate``."""
        with self._bitrate_lock:
            self._target_bitrate = int(self.factor * rate)

    def write(self, header: Header, payload: bytes, attributes: Optional[dict]) -> int:
        """Queue a copy of the packet; return the number of bytes it will take."""
        payload = bytes(payload)
        item = _Item(header.clone(), payload, attributes)
        with self._queue_lock:
            self._queue.append(item)
        return header.marshal_size() + len(payload)

    def _pop(self) -> Optional[_Item]:
        with self._queue_lock:
            return self._queue.popleft() if self._queue else None

    def run(self) -> None:
        """Send queued packets within the budget of each pacing interval until closed."""
        last_sent = self._clock()
        interval = self.pacing_interval / 1e9
        while not self._done.wait(interval):
            now = self._clock()
            budget = int(to_milliseconds(now - last_sent) * self.target_bitrate / 8000.0)
            while budget > 0:
                item = self._pop()
                if item is None:
                    break
                with self._writer_lock:
                    writer = self._writers.get(item.header.ssrc)
                if writer is None:
                    _log.warning("no writer found for ssrc: %s", item.header.ssrc)
                    continue
                try:
                    written = writer.write(item.header, item.payload, item.attributes)
                except Exception as exc:  # noqa: BLE001 - a failed packet must not stop pacing
                    _log.error("failed to write packet: %s", exc)
                    written = 0
                last_sent = now
                budget -= written

    def close(self) -> None:
        """Stop sending; packets still queued are dropped."""
        self._done.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> LeakyBucketPacer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()