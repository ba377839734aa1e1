"""UART connection to the fingerprint module, built on pyserial.

The module speaks 8N1 at one of five rates (19200 out of the box). Ports
are opened through :func:`serial.serial_for_url`, so besides device names
(``/dev/ttyUSB0``, ``COM3``) any pyserial URL such as ``loop://`` works.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

import serial
from serial.tools import list_ports as serial_list_ports

from ..errors import NotConnectedError, TransportError
from .base import Transport

logger = logging.getLogger(__name__)

READ_BUFFER_SIZE = 16 * 1024
WRITE_TIMEOUT_S = 2.0
DEFAULT_BAUD_RATE = 19200

# Descriptions of the USB-UART bridges the module is usually wired through
_BRIDGE_PATTERN = re.compile(r"ch340|ch341|cp210|ft232|pl2303|uart", re.IGNORECASE)


@dataclass
class PortInfo:
    """A serial port found on this machine."""

    device: str
    description: str = ""
    hwid: str = ""


def list_ports() -> list[PortInfo]:
    """Enumerate the serial ports available on this machine."""
    return [
        PortInfo(device=p.device, description=p.description or "", hwid=p.hwid or "")
        for p in serial_list_ports.comports()
    ]


def detect_port() -> str | None:
    """Pick the most likely port for the module.

    Prefers ports whose description names a USB-UART bridge, then falls
    back to the first port found.
    """
    ports = list_ports()
    for info in ports:
        if _BRIDGE_PATTERN.search(info.description):
            return info.device
    return ports[0].device if ports else None


class SerialConnection(Transport):
    """Manages the UART link to the module.

    Usage::

        conn = SerialConnection()
        conn.open("/dev/ttyUSB0", 19200)
        await conn.write(frame_bytes)
        data = await conn.read(conn.bytes_available)
        conn.close()
    """

    def __init__(self) -> None:
        self._serial: serial.SerialBase | None = None
        self._port_name = ""
        self._baud_rate = DEFAULT_BAUD_RATE

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def port_name(self) -> str:
        return self._port_name

    @property
    def baud_rate(self) -> int:
        return self._baud_rate

    @property
    def bytes_available(self) -> int:
        if not self.is_open:
            return 0
        return self._serial.in_waiting

    def open(self, port: str, baud_rate: int = DEFAULT_BAUD_RATE) -> None:
        """Open ``port`` with 8N1 framing and non-blocking reads.

        Raises:
            TransportError: If the port cannot be opened.
        """
        if self.is_open:
            self.close()

        try:
            handle = serial.serial_for_url(
                port,
                baudrate=baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0,
                write_timeout=WRITE_TIMEOUT_S,
            )
        except (serial.SerialException, ValueError) as e:
            raise TransportError(
                f"Could not open serial port {port!r} at {baud_rate} baud. "
                f"Ensure the module is connected and you have permissions. "
                f"Last error: {e}"
            ) from e

        # Only some platforms let the driver buffer size be changed
        if hasattr(handle, "set_buffer_size"):
            try:
                handle.set_buffer_size(rx_size=READ_BUFFER_SIZE)
            except (serial.SerialException, ValueError, TypeError) as e:
                logger.debug("Could not resize read buffer: %s", e)

        self._serial = handle
        self._port_name = port
        self._baud_rate = baud_rate
        logger.info("Opened %s at %d baud", port, baud_rate)

    def close(self) -> None:
        """Close the serial port."""
        if self._serial is None:
            return

        try:
            if self._serial.is_open:
                self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing port %s: %s", self._port_name, e)
        finally:
            self._serial = None
            logger.info("Closed %s", self._port_name)

    def _require_open(self) -> serial.SerialBase:
        if not self.is_open:
            raise NotConnectedError("Serial port is not open")
        return self._serial

    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes that have already arrived.

        Raises:
            NotConnectedError: If the port is closed.
        """
        handle = self._require_open()
        return handle.read(size)

    async def write(self, data: bytes) -> None:
        """Write ``data`` to the port.

        Raises:
            NotConnectedError: If the port is closed.
        """
        handle = self._require_open()
        await asyncio.to_thread(handle.write, data)

    async def flush(self) -> None:
        handle = self._require_open()
        await asyncio.to_thread(handle.flush)
