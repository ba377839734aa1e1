"""Response catalog and typed decoding of module replies."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ..errors import MalformedResponseError
from .enums import (
    BaudRate,
    MessageLengthCategory,
    MessageResponseCode,
    MessageType,
    OperationCode,
)
from .framing import (
    DATA_PACKET_OVERHEAD,
    FRAME_SIZE,
    build_fixed_frame,
    from_big_endian16,
    parse_data_packet,
    parse_frame,
)

logger = logging.getLogger(__name__)

_VARIABLE_RESPONSES = {
    OperationCode.GET_DSP_VERSION,
    OperationCode.ACQUIRE_IMAGE,
    OperationCode.ACQUIRE_IMAGE_EIGENVALUES,
    OperationCode.GET_USER_PROPERTIES,
    OperationCode.GET_ALL_USERS,
}

# Length category of every reply. Differs from the request table: e.g.
# acquire-image is a fixed request but a variable reply.
RESPONSE_LENGTH_CATEGORIES: MappingProxyType[int, MessageLengthCategory] = MappingProxyType(
    {
        code: (
            MessageLengthCategory.VARIABLE
            if code in _VARIABLE_RESPONSES
            else MessageLengthCategory.FIXED
        )
        for code in OperationCode
    }
)

# Reserved bytes in front of the eigenvalues of an acquisition reply
EIGENVALUES_RESERVED = 3


def response_length_category(opcode: int) -> MessageLengthCategory:
    """Look up the reply length category for an operation code.

    Raises:
        MalformedResponseError: If the opcode is not a known operation.
    """
    try:
        return RESPONSE_LENGTH_CATEGORIES[opcode]
    except KeyError:
        raise MalformedResponseError(f"Unknown operation code 0x{opcode:02X}") from None


def _status(value: int) -> MessageResponseCode | int:
    try:
        return MessageResponseCode(value)
    except ValueError:
        return value


def _status_name(value: MessageResponseCode | int) -> str:
    if isinstance(value, MessageResponseCode):
        return value.name
    return f"0x{value:02X}"


@dataclass(frozen=True)
class Response:
    """A decoded reply. Plain replies carry nothing beyond the status."""

    operation_code: OperationCode
    length_category: MessageLengthCategory
    response_code: MessageResponseCode | int
    data_packet_length: int
    data_packet: bytes | None
    payload: bytes

    @property
    def message_type(self) -> MessageType:
        return MessageType.RESPONSE

    @property
    def checksum(self) -> int:
        return self.payload[6]

    @property
    def is_successful(self) -> bool:
        return self.response_code == MessageResponseCode.OK

    def bare_data_packet(self) -> bytes:
        """The data packet without its delimiter, checksum and end delimiter."""
        if self.data_packet is None or len(self.data_packet) <= DATA_PACKET_OVERHEAD:
            return b""
        return self.data_packet[1:-2]

    def _details(self) -> str:
        return ""

    def summary(self) -> str:
        """One-line description used in RX logging."""
        status = MessageResponseCode.OK if self.is_successful else self.response_code
        line = (
            f"{self.message_type.value:<8} {self.length_category.value:>10} "
            f"SZ: {len(self.payload):4} - {self.operation_code.name} "
            f"- {_status_name(status)}, ({self.data_packet_length}b)"
        )
        details = self._details()
        return f"{line} {details}" if details else line


@dataclass(frozen=True)
class GetDspVersionResponse(Response):
    version: str = ""

    def _details(self) -> str:
        return f"Ver.: {self.version}"


@dataclass(frozen=True)
class RegistrationModeResponse(Response):
    prohibit_repeat: bool = False

    def _details(self) -> str:
        return f"Prohibit Repeat: {self.prohibit_repeat}"


@dataclass(frozen=True)
class AddFingerprintResponse(Response):
    # Same byte as the opcode; the three opcodes equal their pass number
    iteration: int = 0

    def _details(self) -> str:
        return f"Iteration: {self.iteration}"


@dataclass(frozen=True)
class UserCountResponse(Response):
    user_count: int = 0

    def _details(self) -> str:
        return f"User Count: {self.user_count}"


@dataclass(frozen=True)
class MatchOneToNResponse(Response):
    user_id: int = 0
    privilege: int = 0

    @property
    def is_successful(self) -> bool:
        return self.user_id > 0 and self.response_code not in (
            MessageResponseCode.TIMED_OUT,
            MessageResponseCode.NO_SUCH_USER,
        )

    def _details(self) -> str:
        return f"Success: {self.is_successful} User: {self.user_id}, Priv: {self.privilege}"


@dataclass(frozen=True)
class UserPrivilegeResponse(Response):
    privilege: int = 0

    @property
    def is_successful(self) -> bool:
        return self.response_code != MessageResponseCode.NO_SUCH_USER

    def _details(self) -> str:
        return f"Privilege: {self.privilege if self.is_successful else 'No such user'}"


@dataclass(frozen=True)
class MatchingLevelResponse(Response):
    matching_level: int = 0

    def _details(self) -> str:
        return f"Matching Level: {self.matching_level}"


@dataclass(frozen=True)
class AcquireImageResponse(Response):
    image: bytes = b""

    def _details(self) -> str:
        return f"Image Size: {len(self.image)}"


@dataclass(frozen=True)
class AcquireImageEigenvaluesResponse(Response):
    eigenvalues: bytes = b""

    def _details(self) -> str:
        return f"Eigenvalues Size: {len(self.eigenvalues)}"


@dataclass(frozen=True)
class MatchEigenvaluesToUserResponse(Response):
    user_id: int = 0

    def _details(self) -> str:
        return f"Matched User Id: {self.user_id}"


@dataclass(frozen=True)
class UserPropertiesResponse(Response):
    user_id: int = 0
    privilege: int = 0
    eigenvalues: bytes = b""

    def _details(self) -> str:
        return (
            f"User Id: {self.user_id}  Privilege: {self.privilege}  "
            f"Eigenvalues: {len(self.eigenvalues)}"
        )


@dataclass(frozen=True)
class SetUserPropertiesResponse(Response):
    user_id: int = 0

    def _details(self) -> str:
        return f"User: {self.user_id}"


@dataclass(frozen=True)
class CaptureTimeoutResponse(Response):
    capture_timeout: int = 0

    def _details(self) -> str:
        return f"Capture Timeout: {self.capture_timeout}"


@dataclass(frozen=True)
class AllUsersResponse(Response):
    users: Mapping[int, int] = field(default_factory=lambda: MappingProxyType({}))

    def _details(self) -> str:
        return f"Users: {len(self.users)}"


@dataclass(frozen=True)
class BaudRateResponse(Response):
    baud_rate: BaudRate | None = None

    def _details(self) -> str:
        return f"Baud Rate: {self.baud_rate.rate if self.baud_rate else 'unknown'}"


def _header_fields(payload: bytes) -> dict:
    """Decode the fields every reply shares."""
    payload = bytes(payload)
    if len(payload) < FRAME_SIZE:
        raise MalformedResponseError(
            f"Response must be at least {FRAME_SIZE} bytes, got {len(payload)}"
        )

    category = response_length_category(payload[1])
    data_packet_length = -1
    if category == MessageLengthCategory.VARIABLE:
        data_packet_length = from_big_endian16(payload[2:4])

    # Bad checksums are reported but the reply is still decoded
    if parse_frame(payload) is None:
        logger.warning(
            "RX: Invalid header frame for 0x%02X: %s",
            payload[1],
            payload[:FRAME_SIZE].hex(" ").upper(),
        )
    data_packet = payload[FRAME_SIZE:] if len(payload) > FRAME_SIZE else None
    if data_packet is not None and parse_data_packet(data_packet) is None:
        logger.warning("RX: Data packet checksum mismatch for 0x%02X", payload[1])

    return {
        "operation_code": OperationCode(payload[1]),
        "length_category": category,
        "response_code": _status(payload[4]),
        "data_packet_length": data_packet_length,
        "data_packet": data_packet,
        "payload": payload,
    }


def _bare(fields: dict) -> bytes:
    return Response(**fields).bare_data_packet()


def _ok(fields: dict) -> bool:
    return fields["response_code"] == MessageResponseCode.OK


def parse_plain(payload: bytes) -> Response:
    return Response(**_header_fields(payload))


def parse_dsp_version(payload: bytes) -> GetDspVersionResponse:
    fields = _header_fields(payload)
    version = _bare(fields).decode("ascii", errors="replace")
    return GetDspVersionResponse(**fields, version=version)


def parse_registration_mode(payload: bytes) -> RegistrationModeResponse:
    fields = _header_fields(payload)
    return RegistrationModeResponse(**fields, prohibit_repeat=payload[3] == 1)


def parse_add_fingerprint(payload: bytes) -> AddFingerprintResponse:
    fields = _header_fields(payload)
    return AddFingerprintResponse(**fields, iteration=payload[1])


def parse_user_count(payload: bytes) -> UserCountResponse:
    fields = _header_fields(payload)
    return UserCountResponse(**fields, user_count=from_big_endian16(payload[2:4]))


def parse_match_one_to_n(payload: bytes) -> MatchOneToNResponse:
    fields = _header_fields(payload)
    return MatchOneToNResponse(
        **fields,
        user_id=from_big_endian16(payload[2:4]),
        privilege=payload[4],
    )


def parse_user_privilege(payload: bytes) -> UserPrivilegeResponse:
    fields = _header_fields(payload)
    return UserPrivilegeResponse(**fields, privilege=payload[4])


def parse_matching_level(payload: bytes) -> MatchingLevelResponse:
    fields = _header_fields(payload)
    return MatchingLevelResponse(**fields, matching_level=payload[3])


def parse_acquire_image(payload: bytes) -> AcquireImageResponse:
    fields = _header_fields(payload)
    image = _bare(fields) if _ok(fields) else b""
    return AcquireImageResponse(**fields, image=image)


def parse_acquire_image_eigenvalues(payload: bytes) -> AcquireImageEigenvaluesResponse:
    fields = _header_fields(payload)
    eigenvalues = b""
    if _ok(fields):
        eigenvalues = _bare(fields)[EIGENVALUES_RESERVED:]
    return AcquireImageEigenvaluesResponse(**fields, eigenvalues=eigenvalues)


def parse_match_eigenvalues_to_user(payload: bytes) -> MatchEigenvaluesToUserResponse:
    fields = _header_fields(payload)
    user_id = from_big_endian16(payload[2:4]) if _ok(fields) else 0
    return MatchEigenvaluesToUserResponse(**fields, user_id=user_id)


def parse_user_properties(payload: bytes) -> UserPropertiesResponse:
    """Decode a user's id, privilege and eigenvalues from the data packet."""
    fields = _header_fields(payload)
    if not _ok(fields):
        return UserPropertiesResponse(**fields)

    packet = _bare(fields)
    if len(packet) < 3:
        raise MalformedResponseError(
            f"User properties packet too short: {len(packet)} bytes"
        )
    return UserPropertiesResponse(
        **fields,
        user_id=from_big_endian16(packet[0:2]),
        privilege=packet[2],
        eigenvalues=packet[3:],
    )


def parse_set_user_properties(payload: bytes) -> SetUserPropertiesResponse:
    fields = _header_fields(payload)
    return SetUserPropertiesResponse(**fields, user_id=from_big_endian16(payload[2:4]))


def parse_capture_timeout(payload: bytes) -> CaptureTimeoutResponse:
    fields = _header_fields(payload)
    return CaptureTimeoutResponse(**fields, capture_timeout=payload[3])


def decode_user_table(packet: bytes) -> dict[int, int]:
    """Decode a user table into ``{user_id: privilege}``.

    The table starts with a big-endian user count followed by 3-byte
    records (user id, privilege). A count of zero means no users, whatever
    follows. Later duplicates overwrite earlier ones.
    """
    users: dict[int, int] = {}
    if len(packet) < 2 or from_big_endian16(packet[0:2]) == 0:
        return users

    for offset in range(2, len(packet) - 2, 3):
        user_id = from_big_endian16(packet[offset : offset + 2])
        users[user_id] = packet[offset + 2]
    return users


def parse_all_users(payload: bytes) -> AllUsersResponse:
    fields = _header_fields(payload)
    users = decode_user_table(_bare(fields)) if _ok(fields) else {}
    return AllUsersResponse(**fields, users=MappingProxyType(users))


def parse_baud_rate(payload: bytes) -> BaudRateResponse:
    fields = _header_fields(payload)
    try:
        baud_rate = BaudRate(payload[4])
    except ValueError:
        baud_rate = None
    return BaudRateResponse(**fields, baud_rate=baud_rate)


def baud_rate_response(baud_rate: BaudRate) -> BaudRateResponse:
    """Synthesize the reply describing ``baud_rate`` without touching the wire."""
    return parse_baud_rate(build_fixed_frame(OperationCode.CHANGE_BAUD_RATE, 0, 0, baud_rate))


RESPONSE_PARSERS: MappingProxyType[OperationCode, Callable[[bytes], Response]] = MappingProxyType(
    {
        OperationCode.SLEEP_MODULE: parse_plain,
        OperationCode.CHANGE_BAUD_RATE: parse_baud_rate,
        OperationCode.GET_SET_REGISTRATION_MODE: parse_registration_mode,
        OperationCode.ADD_FINGERPRINT_1: parse_add_fingerprint,
        OperationCode.ADD_FINGERPRINT_2: parse_add_fingerprint,
        OperationCode.ADD_FINGERPRINT_3: parse_add_fingerprint,
        OperationCode.DELETE_USER: parse_plain,
        OperationCode.DELETE_ALL_USERS: parse_plain,
        OperationCode.GET_USER_COUNT: parse_user_count,
        OperationCode.MATCH_ONE_TO_ONE: parse_plain,
        OperationCode.MATCH_ONE_TO_N: parse_match_one_to_n,
        OperationCode.GET_USER_PRIVILEGE: parse_user_privilege,
        OperationCode.GET_DSP_VERSION: parse_dsp_version,
        OperationCode.GET_SET_MATCHING_LEVEL: parse_matching_level,
        OperationCode.ACQUIRE_IMAGE: parse_acquire_image,
        OperationCode.ACQUIRE_IMAGE_EIGENVALUES: parse_acquire_image_eigenvalues,
        OperationCode.GET_USER_PROPERTIES: parse_user_properties,
        OperationCode.GET_ALL_USERS: parse_all_users,
        OperationCode.GET_SET_CAPTURE_TIMEOUT: parse_capture_timeout,
        OperationCode.MATCH_IMAGE_TO_EIGENVALUES: parse_plain,
        OperationCode.MATCH_USER_TO_EIGENVALUES: parse_plain,
        OperationCode.MATCH_EIGENVALUES_TO_USER: parse_match_eigenvalues_to_user,
        OperationCode.SET_USER_PROPERTIES: parse_set_user_properties,
    }
)


def parse_response(payload: bytes) -> Response:
    """Dispatch a raw reply to the parser registered for its opcode.

    Raises:
        MalformedResponseError: If the reply is too short or its opcode is
            unknown.
    """
    if len(payload) < FRAME_SIZE:
        raise MalformedResponseError(
            f"Response must be at least {FRAME_SIZE} bytes, got {len(payload)}"
        )
    response_length_category(payload[1])
    return RESPONSE_PARSERS[OperationCode(payload[1])](payload)
