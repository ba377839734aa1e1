"""Adaptive reader that pulls one complete reply off a byte stream.

The reader starts by expecting a fixed 8-byte frame. Once the first four
bytes are in, the opcode tells whether a data packet follows; if so the
header's length field extends the expected size. Bytes may arrive in any
chunking, and the deadline is pushed back after every successful read so a
slow but steady transfer never times out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from ..errors import NotConnectedError, ResponseTimeoutError
from .enums import MessageLengthCategory
from .framing import DATA_PACKET_OVERHEAD, FRAME_SIZE, from_big_endian16
from .parser import response_length_category

if TYPE_CHECKING:
    from ..transport.base import Transport

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.01
LARGE_PACKET_SIZE = 500  # bytes; larger replies are read with pacing
MIN_PACING_DELAY_S = 0.1


def pacing_delay(expected: int, baud_rate: int) -> float:
    """Seconds to wait between reads of a large reply.

    Roughly the time the whole reply takes on the wire, never less than
    100 ms, so the module's internal buffer is not overrun.
    """
    return max(expected / baud_rate, MIN_PACING_DELAY_S)


async def read_frame(
    transport: Transport,
    timeout: float,
    *,
    poll_interval: float = POLL_INTERVAL_S,
) -> bytes:
    """Read exactly one reply from ``transport``.

    Args:
        transport: An open transport.
        timeout: Seconds allowed between successful reads.
        poll_interval: Sleep between polls while no bytes are available.

    Returns:
        The reply, exactly as many bytes as its header announces.

    Raises:
        ResponseTimeoutError: If the reply did not complete in time.
        MalformedResponseError: If the opcode is not a known operation.
        NotConnectedError: If the transport closed while reading.
    """
    response = bytearray()
    expected = FRAME_SIZE
    classified = False
    is_variable = False
    delay = 0.0
    deadline = time.monotonic() + timeout

    while len(response) < expected:
        if not transport.is_open:
            raise NotConnectedError("Transport closed while waiting for a response")

        available = transport.bytes_available
        chunk = b""
        if available > 0:
            chunk = await transport.read(min(available, expected - len(response)))

        if chunk:
            response += chunk
            deadline = time.monotonic() + timeout

            if len(response) >= 4 and not classified:
                classified = True
                is_variable = (
                    response_length_category(response[1]) == MessageLengthCategory.VARIABLE
                )
                if is_variable:
                    header_byte_count = from_big_endian16(bytes(response[2:4]))
                    if header_byte_count > 0:
                        expected = FRAME_SIZE + DATA_PACKET_OVERHEAD + header_byte_count
                        delay = pacing_delay(expected, transport.baud_rate)
                        logger.debug(
                            "RX: Expected bytes: %d. Large packet delay: %d ms",
                            expected,
                            delay * 1000,
                        )
                    else:
                        logger.warning(
                            "RX: Variable-length reply for 0x%02X announced 0 bytes; "
                            "reading it as a fixed frame",
                            response[1],
                        )
                        is_variable = False

            if is_variable and len(response) < expected and expected > LARGE_PACKET_SIZE:
                logger.debug(
                    "RX: Received %d bytes. Length: %d of %d; %d remaining",
                    len(chunk),
                    len(response),
                    expected,
                    expected - len(response),
                )
                await asyncio.sleep(delay)
        else:
            await asyncio.sleep(poll_interval)

        if len(response) < expected and time.monotonic() > deadline:
            logger.warning(
                "RX: Did not receive enough bytes. Received: %d  Expected: %d  [%s]",
                len(response),
                expected,
                response.hex(" ").upper(),
            )
            raise ResponseTimeoutError(bytes(response), expected)

    return bytes(response)
