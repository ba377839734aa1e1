"""Tests for command builders."""

import pytest

from waveshare_fingerprint.errors import InvalidArgumentError
from waveshare_fingerprint.protocol.commands import (
    REQUEST_LENGTH_CATEGORIES,
    build_acquire_image,
    build_acquire_image_eigenvalues,
    build_add_fingerprint,
    build_change_baud_rate,
    build_delete_all_users,
    build_delete_user,
    build_get_all_users,
    build_get_capture_timeout,
    build_get_dsp_version,
    build_get_matching_level,
    build_get_registration_mode,
    build_get_user_count,
    build_get_user_privilege,
    build_get_user_properties,
    build_match_eigenvalues_to_user,
    build_match_image_to_eigenvalues,
    build_match_one_to_n,
    build_match_one_to_one,
    build_match_user_to_eigenvalues,
    build_set_capture_timeout,
    build_set_matching_level,
    build_set_registration_mode,
    build_set_user_properties,
    build_sleep,
)
from waveshare_fingerprint.protocol.enums import (
    BaudRate,
    MessageLengthCategory,
    MessageType,
    OperationCode,
)
from waveshare_fingerprint.protocol.framing import FRAME_SIZE, is_valid_frame, parse_frame


def test_operation_code_values():
    """Key operation codes match the module's command table."""
    assert OperationCode.ADD_FINGERPRINT_1 == 0x01
    assert OperationCode.GET_USER_COUNT == 0x09
    assert OperationCode.MATCH_ONE_TO_N == 0x0C
    assert OperationCode.CHANGE_BAUD_RATE == 0x21
    assert OperationCode.GET_DSP_VERSION == 0x26
    assert OperationCode.SET_USER_PROPERTIES == 0x41
    assert OperationCode.MATCH_IMAGE_TO_EIGENVALUES == 0x44


def test_request_length_table():
    """Only the four eigenvalue uploads are variable-length requests."""
    variable = {
        code
        for code, category in REQUEST_LENGTH_CATEGORIES.items()
        if category == MessageLengthCategory.VARIABLE
    }
    assert variable == {0x41, 0x42, 0x43, 0x44}
    assert len(REQUEST_LENGTH_CATEGORIES) == len(OperationCode)


@pytest.mark.parametrize(
    "builder, opcode",
    [
        (build_sleep, OperationCode.SLEEP_MODULE),
        (build_get_dsp_version, OperationCode.GET_DSP_VERSION),
        (build_delete_all_users, OperationCode.DELETE_ALL_USERS),
        (build_get_user_count, OperationCode.GET_USER_COUNT),
        (build_get_all_users, OperationCode.GET_ALL_USERS),
        (build_match_one_to_n, OperationCode.MATCH_ONE_TO_N),
        (build_acquire_image, OperationCode.ACQUIRE_IMAGE),
        (build_acquire_image_eigenvalues, OperationCode.ACQUIRE_IMAGE_EIGENVALUES),
    ],
)
def test_parameterless_commands(builder, opcode):
    """Parameterless commands are valid 8-byte frames with zero params."""
    command = builder()
    assert command.operation_code == opcode
    assert command.length_category == MessageLengthCategory.FIXED
    assert command.message_type == MessageType.REQUEST
    assert len(command.payload) == FRAME_SIZE
    assert is_valid_frame(command.payload)
    assert command.payload[2:6] == b"\x00\x00\x00\x00"


def test_checksum_property():
    """The checksum property reads frame byte 6."""
    command = build_delete_user(0x0102)
    assert command.checksum == command.payload[6]
    assert command.checksum == 0x04 ^ 0x01 ^ 0x02


def test_get_set_frames():
    """Get puts 1 in P3; set puts the value in P2 and 0 in P3."""
    assert build_get_matching_level().payload[2:6] == b"\x00\x00\x01\x00"
    assert build_set_matching_level(7).payload[2:6] == b"\x00\x07\x00\x00"
    assert build_get_registration_mode().payload[2:6] == b"\x00\x00\x01\x00"
    assert build_set_registration_mode(True).payload[2:6] == b"\x00\x01\x00\x00"
    assert build_set_registration_mode(False).payload[2:6] == b"\x00\x00\x00\x00"
    assert build_get_capture_timeout().payload[2:6] == b"\x00\x00\x01\x00"
    assert build_set_capture_timeout(255).payload[2:6] == b"\x00\xff\x00\x00"


def test_matching_level_bounds():
    """Matching level accepts 0..9 only."""
    build_set_matching_level(0)
    build_set_matching_level(9)
    with pytest.raises(InvalidArgumentError):
        build_set_matching_level(10)
    with pytest.raises(InvalidArgumentError):
        build_set_matching_level(-1)


def test_capture_timeout_bounds():
    """Capture timeout must fit in one byte."""
    with pytest.raises(InvalidArgumentError):
        build_set_capture_timeout(256)


def test_change_baud_rate_puts_code_in_p3():
    """The baud rate code travels in P3."""
    command = build_change_baud_rate(BaudRate.BAUD_57600)
    assert command.payload[2:6] == b"\x00\x00\x04\x00"


def test_change_baud_rate_rejects_unknown_code():
    """Codes outside the supported rates are rejected."""
    with pytest.raises(InvalidArgumentError):
        build_change_baud_rate(9)


@pytest.mark.parametrize("iteration", [1, 2, 3])
def test_add_fingerprint_iterations(iteration):
    """Each pass uses its own opcode and carries user id and privilege."""
    command = build_add_fingerprint(iteration, 0x0123, 2)
    assert command.operation_code == iteration
    assert command.payload[1] == iteration
    assert command.payload[2:6] == b"\x01\x23\x02\x00"


def test_add_fingerprint_validation():
    """Pass number, user id and privilege are range-checked."""
    with pytest.raises(InvalidArgumentError):
        build_add_fingerprint(4, 1, 1)
    with pytest.raises(InvalidArgumentError):
        build_add_fingerprint(1, 0, 1)
    with pytest.raises(InvalidArgumentError):
        build_add_fingerprint(1, 4096, 1)
    with pytest.raises(InvalidArgumentError):
        build_add_fingerprint(1, 1, 0)
    with pytest.raises(InvalidArgumentError):
        build_add_fingerprint(1, 1, 4)


@pytest.mark.parametrize(
    "builder",
    [build_delete_user, build_get_user_privilege, build_get_user_properties, build_match_one_to_one],
)
def test_user_commands_validate_id(builder):
    """User ids are limited to 1..4095."""
    assert builder(4095).payload[2:4] == b"\x0f\xff"
    with pytest.raises(InvalidArgumentError):
        builder(0)
    with pytest.raises(InvalidArgumentError):
        builder(4096)


def test_invalid_arguments_are_value_errors():
    """Argument errors stay catchable as ValueError."""
    with pytest.raises(ValueError):
        build_delete_user(0)


def test_set_user_properties_is_variable():
    """Uploading a template sends a header and a data packet."""
    eigenvalues = bytes(range(1, 11))
    command = build_set_user_properties(5, 1, eigenvalues)
    assert command.length_category == MessageLengthCategory.VARIABLE
    assert len(command.payload) == 14 + len(eigenvalues)

    header = parse_frame(command.payload)
    assert header is not None
    assert header.command == OperationCode.SET_USER_PROPERTIES
    assert header.params[:2] == (len(eigenvalues) + 3).to_bytes(2, "big")

    packet = command.payload[FRAME_SIZE:]
    assert packet[1:4] == b"\x00\x05\x01"
    assert packet[4:-2] == eigenvalues


def test_set_user_properties_validation():
    """Empty eigenvalues, bad privilege and bad ids are rejected."""
    with pytest.raises(InvalidArgumentError):
        build_set_user_properties(5, 1, b"")
    with pytest.raises(InvalidArgumentError):
        build_set_user_properties(5, 9, b"\x01")
    with pytest.raises(InvalidArgumentError):
        build_set_user_properties(0, 1, b"\x01")


def test_eigenvalue_commands_zero_fill_prefix():
    """Operations without a user id send zeros in the packet prefix."""
    for command in (
        build_match_image_to_eigenvalues(b"\xaa\xbb"),
        build_match_eigenvalues_to_user(b"\xaa\xbb"),
    ):
        assert command.length_category == MessageLengthCategory.VARIABLE
        assert command.payload[FRAME_SIZE + 1 : FRAME_SIZE + 4] == b"\x00\x00\x00"


def test_match_user_to_eigenvalues_carries_user_id():
    """The user id goes in the data packet prefix."""
    command = build_match_user_to_eigenvalues(0x0203, b"\xaa")
    assert command.payload[FRAME_SIZE + 1 : FRAME_SIZE + 4] == b"\x02\x03\x00"


def test_eigenvalues_too_large():
    """Bodies that overflow the 16-bit length are rejected."""
    with pytest.raises(InvalidArgumentError):
        build_match_eigenvalues_to_user(bytes(0xFFFD))


def test_command_repr_truncates_long_payloads():
    """Long payloads are cut short in repr."""
    short = repr(build_get_user_count())
    assert "GET_USER_COUNT" in short
    assert "(...)" not in short

    long = repr(build_match_eigenvalues_to_user(bytes(20)))
    assert "(...)" in long
