"""Enumerations shared by requests and responses."""

from __future__ import annotations

from enum import Enum, IntEnum

from ..errors import InvalidArgumentError


class MessageType(Enum):
    """Direction of a message."""

    REQUEST = "request"
    RESPONSE = "response"


class MessageLengthCategory(Enum):
    """Fixed 8-byte frames, or a header frame followed by a data packet."""

    FIXED = "fixed"
    VARIABLE = "variable"


class MessageResponseCode(IntEnum):
    """Status byte (offset 4) returned by the module."""

    OK = 0x00
    FAILED = 0x01
    DB_FULL = 0x04
    NO_SUCH_USER = 0x05
    USER_EXISTS = 0x06
    FP_EXISTS = 0x07
    TIMED_OUT = 0x08


class OperationCode(IntEnum):
    """Operation identifiers (frame offset 1)."""

    ADD_FINGERPRINT_1 = 0x01
    ADD_FINGERPRINT_2 = 0x02
    ADD_FINGERPRINT_3 = 0x03
    DELETE_USER = 0x04
    DELETE_ALL_USERS = 0x05
    GET_USER_COUNT = 0x09
    GET_USER_PRIVILEGE = 0x0A
    MATCH_ONE_TO_ONE = 0x0B
    MATCH_ONE_TO_N = 0x0C
    CHANGE_BAUD_RATE = 0x21
    ACQUIRE_IMAGE_EIGENVALUES = 0x23
    ACQUIRE_IMAGE = 0x24
    GET_DSP_VERSION = 0x26
    GET_SET_MATCHING_LEVEL = 0x28
    GET_ALL_USERS = 0x2B
    SLEEP_MODULE = 0x2C
    GET_SET_REGISTRATION_MODE = 0x2D
    GET_SET_CAPTURE_TIMEOUT = 0x2E
    GET_USER_PROPERTIES = 0x31
    SET_USER_PROPERTIES = 0x41
    MATCH_USER_TO_EIGENVALUES = 0x42
    MATCH_EIGENVALUES_TO_USER = 0x43
    MATCH_IMAGE_TO_EIGENVALUES = 0x44


class GetSetMode(IntEnum):
    """Discriminator byte for the get/set family of commands."""

    SET = 0
    GET = 1


class BaudRate(IntEnum):
    """Supported UART rates. The value is the byte sent by change-baud-rate."""

    BAUD_9600 = 1
    BAUD_19200 = 2
    BAUD_38400 = 3
    BAUD_57600 = 4
    BAUD_115200 = 5

    @property
    def rate(self) -> int:
        """Bits per second, e.g. ``19200``."""
        return int(self.name.removeprefix("BAUD_"))

    @classmethod
    def from_rate(cls, rate: int) -> BaudRate:
        """Map an integer bit rate back to its enum member."""
        for member in cls:
            if member.rate == rate:
                return member
        raise InvalidArgumentError(
            f"Baud rate {rate} is not supported. "
            f"Valid: {[m.rate for m in cls]}"
        )
