"""
Central configuration for driver tunables.

Every value can be overridden through an environment variable.
"""

from __future__ import annotations

import logging
import os

from .protocol.enums import BaudRate

logger = logging.getLogger(__name__)

# Serial port to open when none is given; empty means auto-detect
SERIAL_PORT: str = os.getenv("WAVESHARE_FP_PORT", "").strip()

# Rate the module is first opened at (factory default 19200)
SERIAL_BAUD: int = int(os.getenv("WAVESHARE_FP_BAUD", "19200"))

# Reply timeouts (seconds), measured from the last byte received
DEFAULT_TIMEOUT_S: float = float(os.getenv("WAVESHARE_FP_TIMEOUT_S", "2.0"))
# Operations that wait for a finger on the sensor
ACQUIRE_TIMEOUT_S: float = float(os.getenv("WAVESHARE_FP_ACQUIRE_TIMEOUT_S", "60.0"))
# Cheap probe used while hunting for the module's baud rate
BAUD_PROBE_TIMEOUT_S: float = float(os.getenv("WAVESHARE_FP_PROBE_TIMEOUT_S", "0.25"))

# Pause after opening the port before the first exchange
OPEN_SETTLE_S: float = float(os.getenv("WAVESHARE_FP_OPEN_SETTLE_S", "0.1"))

LOG_LEVEL_DEFAULT: str = os.getenv("WAVESHARE_FP_LOG_LEVEL", "INFO").strip().upper()


def get_default_baud_rate() -> BaudRate:
    """Return the configured opening rate, falling back to 19200."""
    try:
        return BaudRate.from_rate(SERIAL_BAUD)
    except ValueError:
        logger.warning(
            "Unsupported WAVESHARE_FP_BAUD=%s, using 19200", SERIAL_BAUD
        )
        return BaudRate.BAUD_19200
