"""Driver for the WaveShare UART fingerprint reader."""

__version__ = "0.1.0"

from .errors import (
    FingerprintError,
    InvalidArgumentError,
    MalformedResponseError,
    NotConnectedError,
    ResponseTimeoutError,
    SessionError,
    TransportError,
)
from .protocol.enums import BaudRate, MessageResponseCode, OperationCode
from .session import FingerprintSession
