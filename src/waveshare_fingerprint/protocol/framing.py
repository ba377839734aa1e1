"""Frame builder and parser for the module's UART wire format.

Fixed frame layout (8 bytes)::

    +------+---------+----+----+----+----+----------+------+
    | 0xF5 | Command | P1 | P2 | P3 | P4 | Checksum | 0xF5 |
    +------+---------+----+----+----+----+----------+------+

- Checksum: XOR of bytes 1-5 (command and the first three parameters)

Variable frames are a fixed header frame whose P1/P2 carry the big-endian
length of the data packet that follows::

    +------+------------+-----------+------------+-------------+----------+------+
    | 0xF5 | User ID Hi | User ID Lo| Privilege  | Body ...    | Checksum | 0xF5 |
    +------+------------+-----------+------------+-------------+----------+------+

- Length: user id (2) + privilege (1) + body
- Checksum: XOR of every byte between the delimiters, excluding itself
"""

from __future__ import annotations

from dataclasses import dataclass

DELIMITER = 0xF5
FRAME_SIZE = 8
DATA_PACKET_OVERHEAD = 3  # delimiter + checksum + delimiter
MAX_DATA_PACKET_LENGTH = 0xFFFF


@dataclass(frozen=True)
class Frame:
    """A parsed fixed-length frame."""

    command: int
    params: bytes  # P1..P4

    def __repr__(self) -> str:
        return f"Frame(command=0x{self.command:02X}, params={self.params.hex(' ')})"


def to_big_endian16(value: int) -> bytes:
    """Encode an unsigned 16-bit integer as two big-endian bytes."""
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"Value must be 0-65535, got {value}")
    return value.to_bytes(2, "big")


def from_big_endian16(data: bytes) -> int:
    """Decode two big-endian bytes into an unsigned 16-bit integer."""
    if len(data) != 2:
        raise ValueError(f"Expected 2 bytes, got {len(data)}")
    return int.from_bytes(data, "big")


def compute_checksum(data: bytes, start: int = 1, end: int = 5) -> int:
    """XOR-fold ``data[start..end]`` (both inclusive).

    Raises:
        ValueError: If ``data`` is shorter than ``end + 1`` bytes.
    """
    if len(data) < end + 1:
        raise ValueError(f"Data has to be at least {end + 1} bytes long, got {len(data)}")

    checksum = 0
    for byte in data[start : end + 1]:
        checksum ^= byte
    return checksum


def build_fixed_frame(
    command: int, p1: int = 0, p2: int = 0, p3: int = 0, p4: int = 0
) -> bytes:
    """Build an 8-byte fixed frame.

    Args:
        command: Single-byte operation code.
        p1-p4: Parameter bytes (frame offsets 2-5).

    Returns:
        The frame with its checksum filled in.
    """
    frame = bytearray([DELIMITER, command, p1, p2, p3, p4, 0, DELIMITER])
    frame[6] = compute_checksum(frame)
    return bytes(frame)


def build_variable_frame(
    command: int, user_id: int, privilege: int, body: bytes
) -> bytes:
    """Build a header frame followed by a data packet.

    The user id and privilege prefix is part of every variable request,
    zero-filled when the operation does not use them.

    Returns:
        ``8 + 3 + length`` bytes, ``length`` being ``len(body) + 3``.
    """
    length = len(body) + 3
    if length > MAX_DATA_PACKET_LENGTH:
        raise ValueError(f"Data packet too large: {length} bytes")

    header = build_fixed_frame(command, *to_big_endian16(length))

    packet = bytearray([DELIMITER])
    packet += to_big_endian16(user_id)
    packet.append(privilege)
    packet += body
    packet += b"\x00"  # checksum placeholder
    packet.append(DELIMITER)
    packet[-2] = compute_checksum(packet, 1, len(packet) - 3)

    return header + bytes(packet)


def is_valid_frame(data: bytes) -> bool:
    """Check delimiters, size and checksum of a fixed frame."""
    if len(data) != FRAME_SIZE:
        return False
    if data[0] != DELIMITER or data[7] != DELIMITER:
        return False
    return data[6] == compute_checksum(data)


def parse_frame(data: bytes) -> Frame | None:
    """Parse the 8-byte header of a frame.

    Args:
        data: A fixed frame, or a variable frame (only the header is read).

    Returns:
        A ``Frame`` if the header is well formed, or ``None`` if the
        delimiters are missing or the checksum fails.
    """
    header = data[:FRAME_SIZE]
    if not is_valid_frame(header):
        return None
    return Frame(command=header[1], params=header[2:6])


def parse_data_packet(data: bytes) -> bytes | None:
    """Return the body between a data packet's delimiters.

    Returns ``None`` if the delimiters are missing or the checksum fails.
    """
    if len(data) < DATA_PACKET_OVERHEAD or data[0] != DELIMITER or data[-1] != DELIMITER:
        return None
    body = data[1:-2]
    checksum = 0
    for byte in body:
        checksum ^= byte
    if checksum != data[-2]:
        return None
    return body
