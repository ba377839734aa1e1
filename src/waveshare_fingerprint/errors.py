"""Exception types raised by the fingerprint driver.

Device status codes (no such user, finger timeout, ...) are never raised;
they travel back to the caller inside the decoded response.
"""

from __future__ import annotations


class FingerprintError(Exception):
    """Base class for all driver errors."""


class InvalidArgumentError(FingerprintError, ValueError):
    """A caller-supplied value is outside the module's legal domain."""


class NotConnectedError(FingerprintError, ConnectionError):
    """An exchange was attempted while the transport is closed."""


class TransportError(FingerprintError, ConnectionError):
    """The underlying port could not be opened or configured."""


class MalformedResponseError(FingerprintError, ValueError):
    """The module replied with bytes that cannot be decoded."""


class SessionError(FingerprintError, RuntimeError):
    """The session was used out of order (e.g. opened twice)."""


class ResponseTimeoutError(FingerprintError, TimeoutError):
    """Fewer bytes than expected arrived before the read deadline."""

    def __init__(self, received: bytes, expected: int) -> None:
        self.received = bytes(received)
        self.expected = expected
        super().__init__(
            f"Did not receive enough bytes. "
            f"Received: {len(self.received)}  Expected: {expected}"
        )
