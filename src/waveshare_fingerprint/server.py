"""MCP server entry point for the WaveShare UART fingerprint module.

Exposes tools and resources via the Model Context Protocol using the
official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import config as cfg
from .errors import InvalidArgumentError, TransportError
from .models.file_formats import export_templates, import_templates
from .models.user import UserTemplate
from .protocol.enums import BaudRate, MessageResponseCode
from .protocol.parser import Response
from .session import FingerprintSession
from .transport.serial_connection import detect_port, list_ports

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "waveshare-fingerprint",
    instructions="MCP server for the WaveShare UART fingerprint reader",
)

# Global session state
_session: FingerprintSession | None = None
_user_cache: dict[int, int] = {}

NO_RESPONSE = {"error": "No response from module"}


def _get_session() -> FingerprintSession:
    """Get the open session, raising if not connected."""
    if _session is None or not _session.is_open:
        raise RuntimeError(
            "Not connected to the module. Use the 'connect' tool first."
        )
    return _session


def _status(response: Response) -> str:
    code = response.response_code
    if isinstance(code, MessageResponseCode):
        return code.name
    return f"0x{code:02X}"


def _result(response: Response, **fields: Any) -> dict[str, Any]:
    return {"success": response.is_successful, "status": _status(response), **fields}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
async def connect(
    port: str | None = None, baud_rate: int | None = None, probe: bool = True
) -> dict[str, Any]:
    """Open the serial link to the fingerprint module.

    Args:
        port: Serial port (e.g. /dev/ttyUSB0, COM3). Defaults to
            WAVESHARE_FP_PORT, then to the first USB-UART bridge found.
        baud_rate: Rate to open at (9600-115200). Defaults to 19200.
        probe: If True, hunt through every supported rate until the
            module answers.
    """
    global _session
    if _session is not None and _session.is_open:
        return {
            "connected": True,
            "message": "Already connected",
            "port": _session.transport.port_name,
        }

    port = port or cfg.SERIAL_PORT or detect_port()
    if not port:
        return {"error": "No serial port found. Pass the port explicitly."}

    try:
        rate = BaudRate.from_rate(baud_rate) if baud_rate else cfg.get_default_baud_rate()
    except InvalidArgumentError as e:
        return {"error": str(e)}

    session = FingerprintSession()
    try:
        detected = await session.open(port, rate, probe_baud_rates=probe)
    except TransportError as e:
        return {"connected": False, "error": str(e)}

    if probe and detected is None:
        await session.close()
        return {
            "connected": False,
            "error": "Module did not answer at any supported baud rate",
        }

    _session = session
    return {
        "connected": True,
        "port": port,
        "baud_rate": session.transport.baud_rate,
    }


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Close the serial link to the module."""
    global _session
    if _session is None:
        return {"disconnected": True}
    await _session.close()
    _session = None
    _user_cache.clear()
    return {"disconnected": True}


@mcp.tool()
def list_serial_ports() -> dict[str, Any]:
    """List the serial ports available on this machine."""
    return {"ports": [asdict(info) for info in list_ports()]}


# ─── MODULE TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
async def get_module_info() -> dict[str, Any]:
    """Retrieve the DSP firmware version, enrolled user count and baud rate."""
    session = _get_session()
    version = await session.get_dsp_version()
    if version is None:
        return NO_RESPONSE

    count = await session.get_user_count()
    return {
        "dsp_version": version.version,
        "user_count": count.user_count if count is not None else None,
        "port": session.transport.port_name,
        "baud_rate": session.transport.baud_rate,
    }


@mcp.tool()
async def get_settings() -> dict[str, Any]:
    """Read the registration mode, matching level and capture timeout."""
    session = _get_session()
    mode = await session.get_registration_mode()
    level = await session.get_matching_level()
    timeout = await session.get_capture_timeout()
    if mode is None or level is None or timeout is None:
        return NO_RESPONSE

    return {
        "prohibit_repeat": mode.prohibit_repeat,
        "matching_level": level.matching_level,
        "capture_timeout": timeout.capture_timeout,
    }


@mcp.tool()
async def set_registration_mode(prohibit_repeat: bool) -> dict[str, Any]:
    """Allow or prohibit enrolling the same finger twice.

    Args:
        prohibit_repeat: True to reject a finger that is already enrolled.
    """
    response = await _get_session().set_registration_mode(prohibit_repeat)
    if response is None:
        return NO_RESPONSE
    return _result(response, prohibit_repeat=response.prohibit_repeat)


@mcp.tool()
async def set_matching_level(level: int) -> dict[str, Any]:
    """Set how strict fingerprint comparison is.

    Args:
        level: 0 (most lenient) to 9 (strictest).
    """
    try:
        response = await _get_session().set_matching_level(level)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if response is None:
        return NO_RESPONSE
    return _result(response, matching_level=response.matching_level)


@mcp.tool()
async def set_capture_timeout(timeout: int) -> dict[str, Any]:
    """Set how long the module waits for a finger.

    Args:
        timeout: 0 waits forever; otherwise roughly timeout * 0.2 s.
    """
    try:
        response = await _get_session().set_capture_timeout(timeout)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if response is None:
        return NO_RESPONSE
    return _result(response, capture_timeout=response.capture_timeout)


@mcp.tool()
async def change_baud_rate(baud_rate: int) -> dict[str, Any]:
    """Switch the module and the serial port to another baud rate.

    Args:
        baud_rate: 9600, 19200, 38400, 57600 or 115200.
    """
    try:
        rate = BaudRate.from_rate(baud_rate)
    except InvalidArgumentError as e:
        return {"error": str(e)}

    session = _get_session()
    response = await session.set_baud_rate(rate)
    if response is None:
        return NO_RESPONSE
    # The reply echoes the rate code in the status byte, so it is not a status
    return {"changed": True, "baud_rate": session.transport.baud_rate}


@mcp.tool()
async def sleep_module() -> dict[str, Any]:
    """Put the module to sleep. It only wakes up again after a reset."""
    response = await _get_session().sleep()
    if response is None:
        return NO_RESPONSE
    return _result(response)


# ─── USER TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
async def get_user_count() -> dict[str, Any]:
    """Return the number of enrolled users."""
    response = await _get_session().get_user_count()
    if response is None:
        return NO_RESPONSE
    return _result(response, user_count=response.user_count)


@mcp.tool()
async def list_users() -> dict[str, Any]:
    """List every enrolled user id with its privilege."""
    response = await _get_session().get_all_users()
    if response is None:
        return NO_RESPONSE
    if not response.is_successful:
        return _result(response, users=[])

    _user_cache.clear()
    _user_cache.update(response.users)
    users = [
        {"user_id": user_id, "privilege": privilege}
        for user_id, privilege in sorted(response.users.items())
    ]
    return _result(response, users=users, count=len(users))


@mcp.tool()
async def get_user(user_id: int) -> dict[str, Any]:
    """Read one user's privilege and fingerprint template.

    Args:
        user_id: User id (1-4095).
    """
    try:
        response = await _get_session().get_user_properties(user_id)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if response is None:
        return NO_RESPONSE
    if not response.is_successful:
        return _result(response, user_id=user_id)

    return _result(
        response,
        user_id=response.user_id,
        privilege=response.privilege,
        eigenvalues=response.eigenvalues.hex(),
        eigenvalues_size=len(response.eigenvalues),
    )


@mcp.tool()
async def enroll_user(user_id: int, privilege: int = 1) -> dict[str, Any]:
    """Enroll a new user. The finger must be placed on the sensor three times.

    Args:
        user_id: New user id (1-4095).
        privilege: 1-3.
    """
    try:
        response = await _get_session().enroll_user(user_id, privilege)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if response is None:
        return NO_RESPONSE
    return _result(
        response,
        enrolled=response.is_successful and response.iteration == 3,
        user_id=user_id,
        iteration=response.iteration,
    )


@mcp.tool()
async def delete_user(user_id: int) -> dict[str, Any]:
    """Delete one user.

    Args:
        user_id: User id (1-4095).
    """
    try:
        response = await _get_session().delete_user(user_id)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if response is None:
        return NO_RESPONSE
    if response.is_successful:
        _user_cache.pop(user_id, None)
    return _result(response, user_id=user_id)


@mcp.tool()
async def delete_all_users(confirm: bool = False) -> dict[str, Any]:
    """Delete every enrolled user. This cannot be undone.

    Args:
        confirm: Must be True, as a guard against accidental wipes.
    """
    if not confirm:
        return {"error": "Refusing to delete all users without confirm=True"}

    response = await _get_session().delete_all_users()
    if response is None:
        return NO_RESPONSE
    _user_cache.clear()
    return _result(response)


# ─── MATCHING TOOLS ──────────────────────────────────────────────────

@mcp.tool()
async def match_finger() -> dict[str, Any]:
    """Identify the finger on the sensor against every enrolled user."""
    response = await _get_session().match_one_to_n()
    if response is None:
        return NO_RESPONSE
    return _result(
        response,
        matched=response.is_successful,
        user_id=response.user_id if response.is_successful else None,
        privilege=response.privilege if response.is_successful else None,
    )


@mcp.tool()
async def verify_user(user_id: int) -> dict[str, Any]:
    """Check whether the finger on the sensor belongs to ``user_id``.

    Args:
        user_id: User id (1-4095).
    """
    try:
        response = await _get_session().match_one_to_one(user_id)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if response is None:
        return NO_RESPONSE
    return _result(response, matched=response.is_successful, user_id=user_id)


@mcp.tool()
async def capture_eigenvalues() -> dict[str, Any]:
    """Scan the finger on the sensor and return its template as hex."""
    response = await _get_session().acquire_image_eigenvalues()
    if response is None:
        return NO_RESPONSE
    return _result(
        response,
        eigenvalues=response.eigenvalues.hex(),
        eigenvalues_size=len(response.eigenvalues),
    )


@mcp.tool()
async def match_eigenvalues(eigenvalues: str, user_id: int | None = None) -> dict[str, Any]:
    """Compare a hex template with one user, or search all users for it.

    Args:
        eigenvalues: Template as hex, e.g. from capture_eigenvalues.
        user_id: If given, compare only against this user.
    """
    try:
        data = bytes.fromhex(eigenvalues)
    except ValueError:
        return {"error": "eigenvalues must be a hex string"}

    session = _get_session()
    try:
        if user_id is not None:
            response = await session.match_user_to_eigenvalues(user_id, data)
            if response is None:
                return NO_RESPONSE
            return _result(response, matched=response.is_successful, user_id=user_id)

        found = await session.match_eigenvalues_to_user(data)
    except InvalidArgumentError as e:
        return {"error": str(e)}
    if found is None:
        return NO_RESPONSE
    return _result(
        found,
        matched=found.is_successful,
        user_id=found.user_id if found.is_successful else None,
    )


# ─── BACKUP TOOLS ────────────────────────────────────────────────────

@mcp.tool()
async def backup_users(output_path: str) -> dict[str, Any]:
    """Download every user with its template into a JSON backup file.

    Args:
        output_path: File path for the backup.
    """
    session = _get_session()
    listing = await session.get_all_users()
    if listing is None:
        return NO_RESPONSE
    if not listing.is_successful:
        return _result(listing)

    users: list[UserTemplate] = []
    skipped: list[int] = []
    for user_id in sorted(listing.users):
        response = await session.get_user_properties(user_id)
        if response is None or not response.is_successful:
            logger.warning("Could not read template of user %d", user_id)
            skipped.append(user_id)
            continue
        users.append(
            UserTemplate(
                user_id=response.user_id,
                privilege=response.privilege,
                eigenvalues=response.eigenvalues,
            )
        )

    path = export_templates(users, output_path)
    return {"path": str(path), "user_count": len(users), "skipped": skipped}


@mcp.tool()
async def restore_users(input_path: str, overwrite: bool = False) -> dict[str, Any]:
    """Upload users from a JSON backup file.

    Args:
        input_path: Path to the backup file.
        overwrite: If True, replace users whose id is already enrolled.
    """
    if not Path(input_path).exists():
        return {"error": f"File not found: {input_path}"}

    try:
        users = import_templates(input_path)
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    listing = await session.get_all_users()
    if listing is None:
        return NO_RESPONSE
    existing = set(listing.users) if listing.is_successful else set()

    restored = 0
    skipped: list[int] = []
    failed: list[int] = []
    for user in users:
        if user.user_id in existing:
            if not overwrite:
                skipped.append(user.user_id)
                continue
            deleted = await session.delete_user(user.user_id)
            if deleted is None or not deleted.is_successful:
                logger.warning("Could not delete user %d before restoring it", user.user_id)
                failed.append(user.user_id)
                continue

        response = await session.set_user_properties(
            user.user_id, user.privilege, user.eigenvalues
        )
        if response is not None and response.is_successful:
            restored += 1
        else:
            failed.append(user.user_id)

    return {
        "restored": restored,
        "skipped": skipped,
        "failed": failed,
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("fingerprint://module/info")
def resource_module_info() -> str:
    """Serial port and baud rate of the open session."""
    if _session is None or not _session.is_open:
        return json.dumps({"connected": False})

    transport = _session.transport
    return json.dumps({
        "connected": True,
        "port": transport.port_name,
        "baud_rate": transport.baud_rate,
    })


@mcp.resource("fingerprint://module/status")
def resource_module_status() -> str:
    """Connection state."""
    connected = _session is not None and _session.is_open
    return json.dumps({"connected": connected})


@mcp.resource("fingerprint://users/list")
def resource_users_list() -> str:
    """Users seen by the last list_users call."""
    users = [
        {"user_id": user_id, "privilege": privilege}
        for user_id, privilege in sorted(_user_cache.items())
    ]
    return json.dumps({"users": users})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=cfg.LOG_LEVEL_DEFAULT)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
