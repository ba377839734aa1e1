"""Command catalog and request builders.

Each builder validates its arguments before anything touches the wire and
returns an immutable :class:`Command` carrying the exact bytes to send.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from ..errors import InvalidArgumentError
from .enums import (
    BaudRate,
    GetSetMode,
    MessageLengthCategory,
    MessageType,
    OperationCode,
)
from .framing import (
    MAX_DATA_PACKET_LENGTH,
    build_fixed_frame,
    build_variable_frame,
    to_big_endian16,
)

MIN_USER_ID = 1
MAX_USER_ID = 4095
MIN_PRIVILEGE = 1
MAX_PRIVILEGE = 3
MAX_MATCHING_LEVEL = 9
MAX_CAPTURE_TIMEOUT = 255

_VARIABLE_REQUESTS = {
    OperationCode.MATCH_IMAGE_TO_EIGENVALUES,
    OperationCode.MATCH_USER_TO_EIGENVALUES,
    OperationCode.MATCH_EIGENVALUES_TO_USER,
    OperationCode.SET_USER_PROPERTIES,
}

# Length category of every request, keyed by operation code
REQUEST_LENGTH_CATEGORIES: MappingProxyType[OperationCode, MessageLengthCategory] = (
    MappingProxyType(
        {
            code: (
                MessageLengthCategory.VARIABLE
                if code in _VARIABLE_REQUESTS
                else MessageLengthCategory.FIXED
            )
            for code in OperationCode
        }
    )
)

_ADD_FINGERPRINT_CODES = {
    1: OperationCode.ADD_FINGERPRINT_1,
    2: OperationCode.ADD_FINGERPRINT_2,
    3: OperationCode.ADD_FINGERPRINT_3,
}


@dataclass(frozen=True)
class Command:
    """A request ready to be written to the module."""

    operation_code: OperationCode
    length_category: MessageLengthCategory
    payload: bytes

    @property
    def message_type(self) -> MessageType:
        return MessageType.REQUEST

    @property
    def checksum(self) -> int:
        return self.payload[6]

    def __repr__(self) -> str:
        contents = self.payload[:9].hex(" ").upper()
        if len(self.payload) > 8:
            contents += " (...)"
        return (
            f"Command({self.operation_code.name}, {self.length_category.value}, "
            f"size={len(self.payload)}, payload={contents})"
        )


def _fixed(code: OperationCode, p1: int = 0, p2: int = 0, p3: int = 0, p4: int = 0) -> Command:
    return Command(
        operation_code=code,
        length_category=REQUEST_LENGTH_CATEGORIES[code],
        payload=build_fixed_frame(code, p1, p2, p3, p4),
    )


def _variable(code: OperationCode, user_id: int, privilege: int, eigenvalues: bytes) -> Command:
    return Command(
        operation_code=code,
        length_category=REQUEST_LENGTH_CATEGORIES[code],
        payload=build_variable_frame(code, user_id, privilege, eigenvalues),
    )


def _check_user_id(user_id: int) -> bytes:
    if not MIN_USER_ID <= user_id <= MAX_USER_ID:
        raise InvalidArgumentError(
            f"User id must be {MIN_USER_ID}-{MAX_USER_ID}, got {user_id}"
        )
    return to_big_endian16(user_id)


def _check_privilege(privilege: int) -> None:
    if not MIN_PRIVILEGE <= privilege <= MAX_PRIVILEGE:
        raise InvalidArgumentError(
            f"Privilege must be {MIN_PRIVILEGE}-{MAX_PRIVILEGE}, got {privilege}"
        )


def _check_eigenvalues(eigenvalues: bytes) -> bytes:
    eigenvalues = bytes(eigenvalues)
    if not eigenvalues:
        raise InvalidArgumentError("Eigenvalues must not be empty")
    if len(eigenvalues) + 3 > MAX_DATA_PACKET_LENGTH:
        raise InvalidArgumentError(
            f"Eigenvalues too large: {len(eigenvalues)} bytes"
        )
    return eigenvalues


def _get_set(code: OperationCode, mode: GetSetMode, value: int = 0) -> Command:
    # P2 carries the value only when setting, P3 the get/set discriminator
    return _fixed(code, 0, value if mode == GetSetMode.SET else 0, mode)


# ─── MODULE CONTROL ──────────────────────────────────────────────────

def build_sleep() -> Command:
    """Put the module to sleep. It needs a hardware reset to wake up."""
    return _fixed(OperationCode.SLEEP_MODULE)


def build_get_dsp_version() -> Command:
    return _fixed(OperationCode.GET_DSP_VERSION)


def build_get_registration_mode() -> Command:
    return _get_set(OperationCode.GET_SET_REGISTRATION_MODE, GetSetMode.GET)


def build_set_registration_mode(prohibit_repeat: bool) -> Command:
    """Build a registration mode write.

    Args:
        prohibit_repeat: If True, the same finger cannot be enrolled twice.
    """
    return _get_set(
        OperationCode.GET_SET_REGISTRATION_MODE,
        GetSetMode.SET,
        1 if prohibit_repeat else 0,
    )


def build_get_matching_level() -> Command:
    return _get_set(OperationCode.GET_SET_MATCHING_LEVEL, GetSetMode.GET)


def build_set_matching_level(level: int) -> Command:
    """Build a matching level write.

    Args:
        level: Strictness 0-9.
    """
    if not 0 <= level <= MAX_MATCHING_LEVEL:
        raise InvalidArgumentError(
            f"Matching level must be 0-{MAX_MATCHING_LEVEL}, got {level}"
        )
    return _get_set(OperationCode.GET_SET_MATCHING_LEVEL, GetSetMode.SET, level)


def build_get_capture_timeout() -> Command:
    return _get_set(OperationCode.GET_SET_CAPTURE_TIMEOUT, GetSetMode.GET)


def build_set_capture_timeout(timeout: int) -> Command:
    """Build a capture timeout write.

    Args:
        timeout: Finger wait time 0-255 in module units; 0 waits forever.
    """
    if not 0 <= timeout <= MAX_CAPTURE_TIMEOUT:
        raise InvalidArgumentError(
            f"Capture timeout must be 0-{MAX_CAPTURE_TIMEOUT}, got {timeout}"
        )
    return _get_set(OperationCode.GET_SET_CAPTURE_TIMEOUT, GetSetMode.SET, timeout)


def build_change_baud_rate(baud_rate: BaudRate) -> Command:
    """Build a change-baud-rate command. The rate code travels in P3."""
    try:
        baud_rate = BaudRate(baud_rate)
    except ValueError:
        raise InvalidArgumentError(f"Unknown baud rate code: {baud_rate}") from None
    return _fixed(OperationCode.CHANGE_BAUD_RATE, 0, 0, baud_rate)


# ─── USERS ───────────────────────────────────────────────────────────

def build_add_fingerprint(iteration: int, user_id: int, privilege: int) -> Command:
    """Build one of the three add-fingerprint passes.

    Args:
        iteration: Enrollment pass 1-3; each pass has its own operation code.
        user_id: User id 1-4095.
        privilege: User privilege 1-3.
    """
    if iteration not in _ADD_FINGERPRINT_CODES:
        raise InvalidArgumentError(f"Iteration must be 1-3, got {iteration}")
    uid = _check_user_id(user_id)
    _check_privilege(privilege)
    return _fixed(_ADD_FINGERPRINT_CODES[iteration], uid[0], uid[1], privilege)


def build_delete_user(user_id: int) -> Command:
    uid = _check_user_id(user_id)
    return _fixed(OperationCode.DELETE_USER, uid[0], uid[1])


def build_delete_all_users() -> Command:
    return _fixed(OperationCode.DELETE_ALL_USERS)


def build_get_user_count() -> Command:
    return _fixed(OperationCode.GET_USER_COUNT)


def build_get_user_privilege(user_id: int) -> Command:
    uid = _check_user_id(user_id)
    return _fixed(OperationCode.GET_USER_PRIVILEGE, uid[0], uid[1])


def build_get_user_properties(user_id: int) -> Command:
    """Build a read of a user's privilege and stored eigenvalues."""
    uid = _check_user_id(user_id)
    return _fixed(OperationCode.GET_USER_PROPERTIES, uid[0], uid[1])


def build_set_user_properties(user_id: int, privilege: int, eigenvalues: bytes) -> Command:
    """Build a variable-length write creating a user from eigenvalues.

    Args:
        user_id: User id 1-4095.
        privilege: User privilege 1-3.
        eigenvalues: Feature vector from a previous eigenvalue acquisition.
    """
    _check_user_id(user_id)
    _check_privilege(privilege)
    return _variable(
        OperationCode.SET_USER_PROPERTIES,
        user_id,
        privilege,
        _check_eigenvalues(eigenvalues),
    )


def build_get_all_users() -> Command:
    return _fixed(OperationCode.GET_ALL_USERS)


# ─── MATCHING ────────────────────────────────────────────────────────

def build_match_one_to_one(user_id: int) -> Command:
    """Build a 1:1 match of a live finger against ``user_id``."""
    uid = _check_user_id(user_id)
    return _fixed(OperationCode.MATCH_ONE_TO_ONE, uid[0], uid[1])


def build_match_one_to_n() -> Command:
    """Build a 1:N search of a live finger against the whole database."""
    return _fixed(OperationCode.MATCH_ONE_TO_N)


def build_acquire_image() -> Command:
    return _fixed(OperationCode.ACQUIRE_IMAGE)


def build_acquire_image_eigenvalues() -> Command:
    return _fixed(OperationCode.ACQUIRE_IMAGE_EIGENVALUES)


def build_match_image_to_eigenvalues(eigenvalues: bytes) -> Command:
    """Build a match of a live finger against supplied eigenvalues."""
    return _variable(
        OperationCode.MATCH_IMAGE_TO_EIGENVALUES, 0, 0, _check_eigenvalues(eigenvalues)
    )


def build_match_user_to_eigenvalues(user_id: int, eigenvalues: bytes) -> Command:
    """Build a match of a stored user against supplied eigenvalues."""
    _check_user_id(user_id)
    return _variable(
        OperationCode.MATCH_USER_TO_EIGENVALUES, user_id, 0, _check_eigenvalues(eigenvalues)
    )


def build_match_eigenvalues_to_user(eigenvalues: bytes) -> Command:
    """Build a 1:N search of supplied eigenvalues against the database."""
    return _variable(
        OperationCode.MATCH_EIGENVALUES_TO_USER, 0, 0, _check_eigenvalues(eigenvalues)
    )
