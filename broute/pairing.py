"""
Pairing: discover the smart meter and persist its radio parameters.

The handshake is linear; every step waits with the same timeout:

    HARDWARE_RESET -> INITIAL_SETUP -> SET_AUTH_INFO -> ACTIVE_SCAN
        -> AWAIT_BEACON -> PERSIST

During ACTIVE_SCAN a listener task filters the notification queue for
scan results and resolves a future with the first beacon found.

Example:
    >>> from broute.transport import AsyncSerialTransport
    >>>
    >>> async def main():
    ...     credentials = RouteBCredentials(route_b_id=rbid, password=password)
    ...     settings = await pair("settings.json", AsyncSerialTransport("/dev/ttyUSB0"), credentials, 7)
    ...     print(settings.mac_address)
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import TYPE_CHECKING

from broute.exceptions import ProtocolError, TimeoutError
from broute.models.records import Beacon
from broute.protocol import commands
from broute.protocol.constants import NotificationCode, ProtocolConstants
from broute.session import J11Session
from broute.settings import Settings, save_settings

if TYPE_CHECKING:
    from pathlib import Path

    from broute.models.records import RouteBCredentials
    from broute.transport.abc import AbstractTransport


class PairingStep(Enum):
    """Pairing handshake steps."""

    HARDWARE_RESET = auto()
    """Reset the module and wait for boot complete."""

    INITIAL_SETUP = auto()
    """Configure the radio on the default channel."""

    SET_AUTH_INFO = auto()
    """Load the Route B ID and password."""

    ACTIVE_SCAN = auto()
    """Start the active scan and wait for its acknowledgment."""

    AWAIT_BEACON = auto()
    """Wait for the first beacon reported by the scan."""

    PERSIST = auto()
    """Write the discovered parameters to the settings file."""


class PairingStateMachine:
    """
    Runs the pairing handshake against one module.

    Attributes:
        step: Step currently executing, None before run().
        beacon: Discovered beacon, None until AWAIT_BEACON completes.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        credentials: RouteBCredentials,
        scan_duration: int = ProtocolConstants.DEFAULT_SCAN_DURATION,
        *,
        channel: int = ProtocolConstants.DEFAULT_CHANNEL,
        timeout: float = ProtocolConstants.DEFAULT_RECEIVE_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            transport: Transport to the radio module.
            credentials: Route B ID and password.
            scan_duration: Active scan duration exponent (1-14).
            channel: Channel for the initial setup.
            timeout: Deadline in seconds for every wait step.
            logger: Logger, defaults to the module logger.

        Raises:
            ValueError: If scan_duration is outside 1-14.
        """
        if not 1 <= scan_duration <= 14:
            raise ValueError(f"Scan duration must be 1-14, got {scan_duration}")
        self._transport = transport
        self._credentials = credentials
        self._scan_duration = scan_duration
        self._channel = channel
        self._timeout = timeout
        self._logger = logger or logging.getLogger(__name__)
        self.step: PairingStep | None = None
        self.beacon: Beacon | None = None

    def _enter(self, step: PairingStep) -> PairingStep:
        self.step = step
        self._logger.debug("Pairing step %s", step.name)
        return step

    async def run(self) -> Beacon:
        """
        Run the handshake up to the discovered beacon.

        PERSIST is left to the caller; see pair().

        Returns:
            The first beacon found by the active scan.

        Raises:
            TimeoutError: If a step waited longer than the timeout.
            DeviceRejection: If the module rejected a command.
            TransportError: If the byte stream failed.
        """
        async with J11Session(self._transport, timeout=self._timeout, logger=self._logger) as session:
            await session.reset(self._enter(PairingStep.HARDWARE_RESET))
            await session.execute(self._enter(PairingStep.INITIAL_SETUP), commands.initial_setup(self._channel))
            await session.execute(self._enter(PairingStep.SET_AUTH_INFO), commands.set_auth_info(self._credentials))

            found: asyncio.Future[Beacon] = asyncio.get_running_loop().create_future()
            listener = asyncio.create_task(self._listen_for_beacon(session, found), name="j11-beacon-listener")
            try:
                step = self._enter(PairingStep.ACTIVE_SCAN)
                await session.execute(step, commands.active_scan(self._scan_duration, self._credentials))

                step = self._enter(PairingStep.AWAIT_BEACON)
                try:
                    beacon = await asyncio.wait_for(found, self._timeout)
                except asyncio.TimeoutError:
                    error = TimeoutError("No beacon found", step=step, timeout_seconds=self._timeout)
                    self._logger.error("%s", error)
                    raise error from None
            finally:
                listener.cancel()
                await asyncio.wait({listener})
                if found.done() and not found.cancelled():
                    found.exception()

        self.beacon = beacon
        self._logger.info("Found smart meter: %s", beacon)
        return beacon

    async def _listen_for_beacon(self, session: J11Session, found: asyncio.Future[Beacon]) -> None:
        try:
            while not found.done():
                notification = await session.demux.receive(session.demux.notifications)
                if notification.command_code != NotificationCode.ACTIVE_SCAN:
                    self._logger.debug("Ignoring %r during scan", notification)
                    continue
                try:
                    beacon = Beacon.from_scan_notification(notification.payload)
                except ProtocolError as e:
                    self._logger.warning("Malformed scan result: %s", e)
                    continue
                if beacon is None:
                    self._logger.debug("No beacon on channel %d", notification.payload[1])
                    continue
                if not found.done():
                    found.set_result(beacon)
        except Exception as e:
            if not found.done():
                found.set_exception(e)


async def pair(
    settings_path: str | Path,
    transport: AbstractTransport,
    credentials: RouteBCredentials,
    scan_duration: int = ProtocolConstants.DEFAULT_SCAN_DURATION,
    *,
    timeout: float = ProtocolConstants.DEFAULT_RECEIVE_TIMEOUT,
    channel: int = ProtocolConstants.DEFAULT_CHANNEL,
    logger: logging.Logger | None = None,
) -> Settings:
    """
    Pair with a smart meter and save the settings file.

    The transport is opened if needed and closed again if it was opened
    here; background tasks are torn down on every outcome.

    Returns:
        The saved settings.

    Raises:
        BRouteError: Any handshake or settings failure.
    """
    machine = PairingStateMachine(
        transport,
        credentials,
        scan_duration,
        channel=channel,
        timeout=timeout,
        logger=logger,
    )
    beacon = await machine.run()

    machine.step = PairingStep.PERSIST
    settings = Settings.from_beacon(credentials, beacon)
    save_settings(settings_path, settings)
    return settings
