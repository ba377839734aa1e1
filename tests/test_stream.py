"""Tests for the adaptive frame reader."""

import asyncio
import logging
import time

import pytest

from conftest import EmptyReadTransport, FakeTransport, reply, variable_reply

from waveshare_fingerprint.errors import (
    MalformedResponseError,
    NotConnectedError,
    ResponseTimeoutError,
)
from waveshare_fingerprint.protocol.enums import OperationCode
from waveshare_fingerprint.protocol.stream import pacing_delay, read_frame


def _open_transport(**kwargs) -> FakeTransport:
    transport = FakeTransport(**kwargs)
    transport.open("fake", 19200)
    return transport


@pytest.mark.asyncio
async def test_reads_fixed_reply():
    """A complete reply is returned as is."""
    transport = _open_transport()
    frame = reply(OperationCode.GET_USER_COUNT, 0, 3)
    transport.inject(frame)

    assert await read_frame(transport, 0.5, poll_interval=0.001) == frame


@pytest.mark.asyncio
async def test_reads_fixed_reply_one_byte_at_a_time():
    """Single-byte chunks are assembled into a frame."""
    transport = _open_transport(chunk_size=1)
    frame = reply(OperationCode.GET_USER_COUNT, 0, 3)
    transport.inject(frame)

    assert await read_frame(transport, 0.5, poll_interval=0.001) == frame
    assert transport.events == [("read", 1)] * 8


@pytest.mark.asyncio
async def test_reads_variable_reply_one_byte_at_a_time():
    """The header's length field extends the read mid-stream."""
    transport = _open_transport(chunk_size=1)
    data = variable_reply(OperationCode.GET_ALL_USERS, bytes.fromhex("00 02 00 01 03 00 02 01"))
    transport.inject(data)

    result = await read_frame(transport, 0.5, poll_interval=0.001)
    assert result == data
    assert len(result) == 8 + 3 + 8


@pytest.mark.asyncio
async def test_does_not_consume_following_bytes():
    """Bytes after the frame stay in the buffer."""
    transport = _open_transport()
    frame = reply(OperationCode.DELETE_USER)
    transport.inject(frame + b"\xaa\xbb")

    assert await read_frame(transport, 0.5, poll_interval=0.001) == frame
    assert transport.bytes_available == 2


@pytest.mark.asyncio
async def test_partial_reply_times_out():
    """A truncated reply times out with what was received."""
    transport = _open_transport()
    transport.inject(b"\xf5\x09\x00")

    start = time.monotonic()
    with pytest.raises(ResponseTimeoutError) as exc_info:
        await read_frame(transport, 0.05, poll_interval=0.001)
    elapsed = time.monotonic() - start

    assert exc_info.value.received == b"\xf5\x09\x00"
    assert exc_info.value.expected == 8
    assert elapsed < 0.5


@pytest.mark.asyncio
async def test_timeout_is_logged(caplog):
    """Timeouts are logged as warnings."""
    transport = _open_transport()
    with caplog.at_level(logging.WARNING):
        with pytest.raises(ResponseTimeoutError):
            await read_frame(transport, 0.02, poll_interval=0.001)
    assert "Did not receive enough bytes" in caplog.text


@pytest.mark.asyncio
async def test_timeout_is_a_builtin_timeout_error():
    """ResponseTimeoutError is a TimeoutError."""
    transport = _open_transport()
    with pytest.raises(TimeoutError):
        await read_frame(transport, 0.02, poll_interval=0.001)


@pytest.mark.asyncio
async def test_empty_reads_do_not_extend_the_deadline():
    """Reads that return nothing still time out."""
    transport = EmptyReadTransport()
    transport.open("fake", 19200)

    start = time.monotonic()
    with pytest.raises(ResponseTimeoutError) as exc_info:
        await asyncio.wait_for(read_frame(transport, 0.05, poll_interval=0.001), 1.0)
    elapsed = time.monotonic() - start

    assert exc_info.value.received == b""
    assert elapsed < 0.5
    assert transport.events


@pytest.mark.asyncio
async def test_deadline_resets_after_each_read():
    """A slow but steady trickle completes even past the timeout."""
    transport = _open_transport()
    frame = reply(OperationCode.GET_USER_COUNT, 0, 1)

    async def trickle():
        for byte in frame:
            await asyncio.sleep(0.03)
            transport.inject(bytes([byte]))

    feeder = asyncio.create_task(trickle())
    result = await read_frame(transport, 0.15, poll_interval=0.001)
    await feeder
    assert result == frame


@pytest.mark.asyncio
async def test_zero_length_variable_reply_reads_as_fixed(caplog):
    """A variable reply announcing 0 bytes is read as 8."""
    transport = _open_transport()
    frame = reply(OperationCode.GET_ALL_USERS)
    transport.inject(frame + b"\xf5")

    with caplog.at_level(logging.WARNING):
        result = await read_frame(transport, 0.5, poll_interval=0.001)

    assert result == frame
    assert "announced 0 bytes" in caplog.text


@pytest.mark.asyncio
async def test_unknown_opcode_is_malformed():
    """An unknown opcode aborts the read."""
    transport = _open_transport()
    transport.inject(bytes.fromhex("F5 7F 00 00 00 00 7F F5"))

    with pytest.raises(MalformedResponseError):
        await read_frame(transport, 0.5, poll_interval=0.001)


@pytest.mark.asyncio
async def test_closed_transport():
    """Reading from a closed transport is an error."""
    transport = FakeTransport()
    with pytest.raises(NotConnectedError):
        await read_frame(transport, 0.5, poll_interval=0.001)


@pytest.mark.asyncio
async def test_large_reply_is_read_completely():
    """Replies over 500 bytes are paced and still read in full."""
    transport = _open_transport()
    image = bytes(i % 251 for i in range(600))
    data = variable_reply(OperationCode.ACQUIRE_IMAGE, image)
    transport.inject(data)

    result = await read_frame(transport, 1.0, poll_interval=0.001)
    assert result == data


def test_pacing_delay_has_a_floor():
    """Pacing never waits less than 100 ms."""
    assert pacing_delay(611, 19200) == pytest.approx(0.1)


def test_pacing_delay_scales_with_size():
    """Pacing grows with size over baud rate."""
    assert pacing_delay(96000, 9600) == pytest.approx(10.0)
