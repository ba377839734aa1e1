"""Test helpers: an in-memory stand-in for the serial link."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable

from waveshare_fingerprint.protocol.framing import (
    DELIMITER,
    FRAME_SIZE,
    build_fixed_frame,
    to_big_endian16,
)
from waveshare_fingerprint.session import FingerprintSession
from waveshare_fingerprint.transport.base import Transport


def reply(opcode: int, p1: int = 0, p2: int = 0, status: int = 0, p4: int = 0) -> bytes:
    """A fixed 8-byte reply; the status sits at frame offset 4."""
    return build_fixed_frame(opcode, p1, p2, status, p4)


def variable_reply(opcode: int, body: bytes, status: int = 0) -> bytes:
    """A header frame announcing ``len(body)`` followed by its data packet."""
    header = build_fixed_frame(opcode, *to_big_endian16(len(body)), status, 0)
    checksum = 0
    for byte in body:
        checksum ^= byte
    return header + bytes([DELIMITER]) + body + bytes([checksum, DELIMITER])


class FakeTransport(Transport):
    """Scripted serial link.

    Every write pops the next scripted reply (``None`` means the module stays
    silent) unless a ``handler`` computes it from the written bytes. Replies
    become readable after ``reply_delay`` seconds and are handed out at most
    ``chunk_size`` bytes at a time. With ``working_rate`` set, the module only
    answers while the port is open at that rate. ``events`` records writes and
    reads in call order.
    """

    def __init__(
        self,
        replies: list[bytes | None] | None = None,
        *,
        handler: Callable[[bytes], bytes | None] | None = None,
        chunk_size: int | None = None,
        reply_delay: float = 0.0,
        working_rate: int | None = None,
    ) -> None:
        self.replies = deque(replies or [])
        self.handler = handler
        self.chunk_size = chunk_size
        self.reply_delay = reply_delay
        self.working_rate = working_rate

        self.written: list[bytes] = []
        self.events: list[tuple[str, int]] = []
        self.opened: list[tuple[str, int]] = []
        self.flushes = 0

        self._open = False
        self._port = ""
        self._baud = 0
        self._rx = bytearray()
        self._pending: list[tuple[float, bytes]] = []

    def inject(self, data: bytes) -> None:
        """Make ``data`` readable right away, as if it arrived unasked."""
        self._rx += data

    def _settle(self) -> None:
        now = time.monotonic()
        ready = [item for item in self._pending if item[0] <= now]
        self._pending = [item for item in self._pending if item[0] > now]
        for _, data in ready:
            self._rx += data

    def open(self, port: str, baud_rate: int) -> None:
        self._open = True
        self._port = port
        self._baud = baud_rate
        self.opened.append((port, baud_rate))

    def close(self) -> None:
        self._open = False
        self._rx.clear()
        self._pending.clear()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def bytes_available(self) -> int:
        self._settle()
        if self.chunk_size is None:
            return len(self._rx)
        return min(len(self._rx), self.chunk_size)

    @property
    def port_name(self) -> str:
        return self._port

    @property
    def baud_rate(self) -> int:
        return self._baud

    async def read(self, size: int) -> bytes:
        self._settle()
        data = bytes(self._rx[:size])
        del self._rx[:size]
        self.events.append(("read", len(data)))
        return data

    async def write(self, data: bytes) -> None:
        self.written.append(bytes(data))
        self.events.append(("write", data[1]))

        if self.working_rate is not None and self._baud != self.working_rate:
            return
        if self.handler is not None:
            answer = self.handler(bytes(data))
        elif self.replies:
            answer = self.replies.popleft()
        else:
            answer = None
        if answer:
            self._pending.append((time.monotonic() + self.reply_delay, answer))

    async def flush(self) -> None:
        self.flushes += 1


class EmptyReadTransport(FakeTransport):
    """Reports pending bytes that every read then fails to deliver."""

    @property
    def bytes_available(self) -> int:
        return FRAME_SIZE

    async def read(self, size: int) -> bytes:
        self.events.append(("read", 0))
        return b""


def make_session(transport: FakeTransport, **overrides) -> FingerprintSession:
    """A session with short timeouts suitable for tests."""
    options = {
        "default_timeout": 0.2,
        "acquire_timeout": 0.2,
        "probe_timeout": 0.05,
        "open_settle": 0,
        "poll_interval": 0.001,
    }
    options.update(overrides)
    return FingerprintSession(transport, **options)
