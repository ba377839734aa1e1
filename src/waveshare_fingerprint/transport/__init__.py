"""Byte transports that carry the protocol."""

from .base import Transport
from .serial_connection import SerialConnection, list_ports
