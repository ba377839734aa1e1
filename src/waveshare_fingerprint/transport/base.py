"""Transport interface.

The contract a duplex byte channel must follow to carry the module's
protocol. It lives outside :mod:`waveshare_fingerprint.protocol` so the
protocol stays transport-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class Transport(ABC):
    """Minimal contract for a serial-like byte channel."""

    @abstractmethod
    def open(self, port: str, baud_rate: int) -> None:
        """Open ``port`` at ``baud_rate`` bits per second."""

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Closing a closed channel is a no-op."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel is currently open."""

    @property
    @abstractmethod
    def bytes_available(self) -> int:
        """Number of received bytes that can be read without waiting."""

    @property
    @abstractmethod
    def port_name(self) -> str:
        """Name of the open (or last opened) port."""

    @property
    @abstractmethod
    def baud_rate(self) -> int:
        """Current bit rate."""

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """Read up to ``size`` already-received bytes."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Queue ``data`` for transmission."""

    @abstractmethod
    async def flush(self) -> None:
        """Wait until all queued data has been transmitted."""
