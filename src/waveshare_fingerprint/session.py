"""Request/response session with the fingerprint module.

A :class:`FingerprintSession` owns one transport and lets a single exchange
run at a time: concurrent callers queue on an :class:`asyncio.Lock` that is
held from the input flush until the reply has been read.

Missing replies are an ordinary outcome (no finger on the sensor, module
asleep, wrong baud rate) and come back as ``None`` rather than an exception.
Device status codes come back inside the decoded response.
"""

from __future__ import annotations

import asyncio
import logging
import time

from . import config as cfg
from .errors import (
    InvalidArgumentError,
    MalformedResponseError,
    NotConnectedError,
    ResponseTimeoutError,
    SessionError,
)
from .protocol.commands import (
    Command,
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
from .protocol.enums import BaudRate
from .protocol.parser import (
    AcquireImageEigenvaluesResponse,
    AcquireImageResponse,
    AddFingerprintResponse,
    AllUsersResponse,
    BaudRateResponse,
    CaptureTimeoutResponse,
    GetDspVersionResponse,
    MatchEigenvaluesToUserResponse,
    MatchingLevelResponse,
    MatchOneToNResponse,
    RegistrationModeResponse,
    Response,
    SetUserPropertiesResponse,
    UserCountResponse,
    UserPrivilegeResponse,
    UserPropertiesResponse,
    baud_rate_response,
    parse_response,
)
from .protocol.stream import POLL_INTERVAL_S, read_frame
from .transport.base import Transport
from .transport.serial_connection import SerialConnection

logger = logging.getLogger(__name__)

ENROLL_ITERATIONS = (1, 2, 3)


class FingerprintSession:
    """Talks to one fingerprint module over one transport.

    Usage::

        async with FingerprintSession() as session:
            await session.open("/dev/ttyUSB0")
            count = await session.get_user_count()
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        default_timeout: float | None = None,
        acquire_timeout: float | None = None,
        probe_timeout: float | None = None,
        open_settle: float | None = None,
        poll_interval: float = POLL_INTERVAL_S,
    ) -> None:
        self._transport = transport if transport is not None else SerialConnection()
        self._lock = asyncio.Lock()
        self._default_timeout = (
            cfg.DEFAULT_TIMEOUT_S if default_timeout is None else default_timeout
        )
        self._acquire_timeout = (
            cfg.ACQUIRE_TIMEOUT_S if acquire_timeout is None else acquire_timeout
        )
        self._probe_timeout = (
            cfg.BAUD_PROBE_TIMEOUT_S if probe_timeout is None else probe_timeout
        )
        self._open_settle = cfg.OPEN_SETTLE_S if open_settle is None else open_settle
        self._poll_interval = poll_interval

    async def __aenter__(self) -> FingerprintSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def is_open(self) -> bool:
        return self._transport.is_open

    # ─── OPEN / CLOSE ────────────────────────────────────────────────

    async def open(
        self,
        port: str,
        baud_rate: BaudRate = BaudRate.BAUD_19200,
        probe_baud_rates: bool = True,
    ) -> BaudRateResponse | None:
        """Open the port and optionally hunt for the module's baud rate.

        Args:
            port: Serial port name or pyserial URL.
            baud_rate: Rate to open the port at.
            probe_baud_rates: If True, confirm the module answers and cycle
                through every supported rate until it does.

        Returns:
            The rate the module answered at when probing, else ``None``.

        Raises:
            SessionError: If the session is already open.
            TransportError: If the port cannot be opened.
        """
        if self._transport.is_open:
            raise SessionError("Session is already open. Call close() first.")

        self._transport.open(port, BaudRate(baud_rate).rate)
        await asyncio.sleep(self._open_settle)

        if probe_baud_rates:
            logger.debug("Will probe baud rates")
            return await self.get_baud_rate()
        return None

    async def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        self._transport.close()

    # ─── EXCHANGE ────────────────────────────────────────────────────

    async def request(self, command: Command, timeout: float | None = None) -> Response | None:
        """Send ``command`` and decode the module's reply.

        Args:
            command: A command from :mod:`waveshare_fingerprint.protocol.commands`.
            timeout: Seconds to wait between reply bytes; defaults to 2 s.

        Returns:
            The typed response, or ``None`` if the module did not answer.

        Raises:
            NotConnectedError: If the session is not open.
            MalformedResponseError: If the reply cannot be decoded.
        """
        async with self._lock:
            return await self._exchange(command, timeout)

    async def _exchange(self, command: Command, timeout: float | None) -> Response | None:
        if not self._transport.is_open:
            raise NotConnectedError("Call open() before communicating with the module")
        if timeout is None:
            timeout = self._default_timeout

        start = time.monotonic()

        discarded = await self._discard_input()
        if discarded:
            logger.debug(
                "RX: Discarded %d bytes: %s", len(discarded), discarded.hex(" ").upper()
            )

        await self._transport.write(command.payload)
        await self._transport.flush()
        logger.debug("TX: %r", command)

        try:
            data = await read_frame(
                self._transport, timeout, poll_interval=self._poll_interval
            )
        except ResponseTimeoutError:
            logger.debug("RX: No response received after %d ms", timeout * 1000)
            return None

        response = parse_response(data)
        logger.debug("RX: %s", response.summary())
        logger.debug(
            "Request-Response cycle took %d ms", (time.monotonic() - start) * 1000
        )
        return response

    async def _discard_input(self) -> bytes:
        """Drain stale bytes left over from an earlier, aborted exchange."""
        discarded = bytearray()
        while self._transport.is_open and self._transport.bytes_available > 0:
            chunk = await self._transport.read(self._transport.bytes_available)
            if not chunk:
                break
            discarded += chunk
        return bytes(discarded)

    # ─── BAUD RATE ───────────────────────────────────────────────────

    async def _probe(self) -> bool:
        try:
            response = await self._exchange(build_get_user_count(), self._probe_timeout)
        except MalformedResponseError as e:
            logger.debug("Probe at %d baud got garbage: %s", self._transport.baud_rate, e)
            return False
        return response is not None

    async def _reopen(self, baud_rate: BaudRate) -> None:
        port = self._transport.port_name
        self._transport.close()
        self._transport.open(port, baud_rate.rate)
        await asyncio.sleep(self._open_settle)

    async def _discover_baud_rate(self) -> BaudRateResponse | None:
        if not self._transport.is_open:
            raise NotConnectedError("Call open() before communicating with the module")

        if await self._probe():
            try:
                return baud_rate_response(BaudRate.from_rate(self._transport.baud_rate))
            except InvalidArgumentError:
                logger.debug(
                    "Module answered at non-standard rate %d", self._transport.baud_rate
                )

        for baud_rate in BaudRate:
            await self._reopen(baud_rate)
            if await self._probe():
                logger.info("Module answered at %d baud", baud_rate.rate)
                return baud_rate_response(baud_rate)

        logger.warning("Module did not answer at any supported baud rate")
        return None

    async def get_baud_rate(self) -> BaudRateResponse | None:
        """Find the rate the module is listening at.

        The current rate is probed first; then every supported rate is
        tried in turn, reopening the port each time. The port is left open
        at the rate that answered.

        Returns:
            The detected rate, or ``None`` if no rate answered.
        """
        async with self._lock:
            return await self._discover_baud_rate()

    async def set_baud_rate(self, baud_rate: BaudRate) -> BaudRateResponse | None:
        """Switch the module (and then the port) to ``baud_rate``."""
        command = build_change_baud_rate(baud_rate)
        baud_rate = BaudRate(baud_rate)

        async with self._lock:
            current = await self._discover_baud_rate()
            if current is None:
                return None
            if current.baud_rate == baud_rate:
                return baud_rate_response(baud_rate)

            response = await self._exchange(command, None)
            if response is not None:
                await self._reopen(baud_rate)
                logger.info("Switched to %d baud", baud_rate.rate)
            return response

    # ─── MODULE CONTROL ──────────────────────────────────────────────

    async def get_dsp_version(self) -> GetDspVersionResponse | None:
        return await self.request(build_get_dsp_version())

    async def sleep(self) -> Response | None:
        """Put the module to sleep. It needs a reset to wake up again."""
        return await self.request(build_sleep())

    async def get_registration_mode(self) -> RegistrationModeResponse | None:
        return await self.request(build_get_registration_mode())

    async def set_registration_mode(self, prohibit_repeat: bool) -> RegistrationModeResponse | None:
        return await self.request(build_set_registration_mode(prohibit_repeat))

    async def get_matching_level(self) -> MatchingLevelResponse | None:
        return await self.request(build_get_matching_level())

    async def set_matching_level(self, level: int) -> MatchingLevelResponse | None:
        return await self.request(build_set_matching_level(level))

    async def get_capture_timeout(self) -> CaptureTimeoutResponse | None:
        return await self.request(build_get_capture_timeout())

    async def set_capture_timeout(self, timeout: int) -> CaptureTimeoutResponse | None:
        return await self.request(build_set_capture_timeout(timeout))

    # ─── USERS ───────────────────────────────────────────────────────

    async def add_fingerprint(
        self, iteration: int, user_id: int, privilege: int
    ) -> AddFingerprintResponse | None:
        """Run one enrollment pass; the finger must be on the sensor."""
        return await self.request(
            build_add_fingerprint(iteration, user_id, privilege), self._acquire_timeout
        )

    async def enroll_user(self, user_id: int, privilege: int) -> AddFingerprintResponse | None:
        """Run all three enrollment passes for a new user.

        Stops at the first pass that fails or gets no reply.

        Returns:
            The reply to the last pass attempted.
        """
        response = None
        for iteration in ENROLL_ITERATIONS:
            response = await self.add_fingerprint(iteration, user_id, privilege)
            if response is None or not response.is_successful:
                logger.info("Enrollment of user %d stopped at pass %d", user_id, iteration)
                break
        return response

    async def delete_user(self, user_id: int) -> Response | None:
        return await self.request(build_delete_user(user_id))

    async def delete_all_users(self) -> Response | None:
        return await self.request(build_delete_all_users(), self._acquire_timeout)

    async def get_user_count(self) -> UserCountResponse | None:
        return await self.request(build_get_user_count())

    async def get_user_privilege(self, user_id: int) -> UserPrivilegeResponse | None:
        return await self.request(build_get_user_privilege(user_id))

    async def get_user_properties(self, user_id: int) -> UserPropertiesResponse | None:
        return await self.request(build_get_user_properties(user_id))

    async def set_user_properties(
        self, user_id: int, privilege: int, eigenvalues: bytes
    ) -> SetUserPropertiesResponse | None:
        return await self.request(build_set_user_properties(user_id, privilege, eigenvalues))

    async def get_all_users(self) -> AllUsersResponse | None:
        return await self.request(build_get_all_users())

    # ─── MATCHING ────────────────────────────────────────────────────

    async def match_one_to_one(self, user_id: int) -> Response | None:
        return await self.request(build_match_one_to_one(user_id), self._acquire_timeout)

    async def match_one_to_n(self) -> MatchOneToNResponse | None:
        return await self.request(build_match_one_to_n(), self._acquire_timeout)

    async def acquire_image(self) -> AcquireImageResponse | None:
        return await self.request(build_acquire_image(), self._acquire_timeout)

    async def acquire_image_eigenvalues(self) -> AcquireImageEigenvaluesResponse | None:
        return await self.request(build_acquire_image_eigenvalues(), self._acquire_timeout)

    async def match_image_to_eigenvalues(self, eigenvalues: bytes) -> Response | None:
        return await self.request(
            build_match_image_to_eigenvalues(eigenvalues), self._acquire_timeout
        )

    async def match_user_to_eigenvalues(self, user_id: int, eigenvalues: bytes) -> Response | None:
        return await self.request(build_match_user_to_eigenvalues(user_id, eigenvalues))

    async def match_eigenvalues_to_user(
        self, eigenvalues: bytes
    ) -> MatchEigenvaluesToUserResponse | None:
        return await self.request(build_match_eigenvalues_to_user(eigenvalues))
