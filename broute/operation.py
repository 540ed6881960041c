"""
Operational run: authenticate against the paired meter and poll it.

Steps, each waiting with the same timeout:

    HARDWARE_RESET -> INITIAL_SETUP -> SET_AUTH_INFO -> ROUTE_B_START
        -> OPEN_UDP_PORT -> PANA_START -> PANA_RESULT -> DERIVE_ADDRESS
        -> OPEN_TUNNEL -> INSTANCE_LIST -> RECEIVE_LOOP -> POLLING
        -> PANA_STOP

Once PANA_START has succeeded, PANA_STOP runs on every way out of the
session except a failed transport.

Inbound ECHONET Lite frames are decoded by a background task and handed to
a consumer callable; broute.echonet.display.log_frame is the default.

Example:
    >>> async def main():
    ...     transport = AsyncSerialTransport("/dev/ttyUSB0")
    ...     await run("settings.json", transport, poll_count=None)
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from enum import Enum, auto
from ipaddress import IPv6Address
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from broute.echonet.display import log_frame
from broute.echonet.frame import EchonetFrame, Property
from broute.exceptions import (
    BRouteError,
    FormatError,
    ProtocolError,
    TimeoutError,
    TransportError,
    raise_for_pana_result,
)
from broute.models.records import PanaResult, RouteBStartResult
from broute.protocol import commands
from broute.protocol.constants import NotificationCode, ProtocolConstants
from broute.session import J11Session
from broute.settings import load_settings
from broute.tunnel import TunnelAdapter

if TYPE_CHECKING:
    from pathlib import Path

    from broute.settings import Settings
    from broute.transport.abc import AbstractTransport

FrameConsumer = Callable[[EchonetFrame], Union[None, Awaitable[Any]]]

# Properties read once after the tunnel opens
DEVICE_PROPERTIES: tuple[int, ...] = (0x80, 0x88, 0x8A, 0xD3, 0xD7, 0xE1, 0xEA)
# History collection day (0 = today), then the history itself
HISTORY_DAY_PROPERTY = 0xE5
HISTORY_PROPERTY = 0xE2
CUMULATIVE_ENERGY_PROPERTY = 0xE0
# Polled properties: instantaneous power and current
POLLED_PROPERTIES: tuple[int, ...] = (0xE7, 0xE8)
DEFAULT_POLL_COUNT = 3


class OperationStep(Enum):
    """Operational run steps."""

    HARDWARE_RESET = auto()
    INITIAL_SETUP = auto()
    SET_AUTH_INFO = auto()
    ROUTE_B_START = auto()
    OPEN_UDP_PORT = auto()
    PANA_START = auto()
    PANA_RESULT = auto()
    DERIVE_ADDRESS = auto()
    OPEN_TUNNEL = auto()
    INSTANCE_LIST = auto()
    """Consume the instance list notification sent after authentication."""
    RECEIVE_LOOP = auto()
    POLLING = auto()
    PANA_STOP = auto()


def link_local_address(mac_address: int) -> IPv6Address:
    """
    Derive the IPv6 link-local address of a 64-bit MAC address.

    The universal/local bit of the interface identifier is flipped.

    Example:
        >>> link_local_address(0x001D129012345678)
        IPv6Address('fe80::21d:1290:1234:5678')
    """
    if not 0 <= mac_address <= 0xFFFF_FFFF_FFFF_FFFF:
        raise ValueError(f"MAC address must fit in 64 bits, got 0x{mac_address:X}")
    interface_id = mac_address ^ ProtocolConstants.LOCAL_ADMIN_MASK
    return IPv6Address((ProtocolConstants.LINK_LOCAL_PREFIX << 64) | interface_id)


class OperationalStateMachine:
    """
    Runs the operational session against the paired meter.

    Attributes:
        step: Step currently executing, None before run().
        tunnel: Tunnel to the meter, None until OPEN_TUNNEL.
        polls: Number of completed power/current polls.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        settings: Settings,
        *,
        consumer: FrameConsumer | None = None,
        timeout: float = ProtocolConstants.DEFAULT_RECEIVE_TIMEOUT,
        settle_delay: float = ProtocolConstants.SETTLE_DELAY,
        poll_interval: float = ProtocolConstants.POLL_INTERVAL,
        poll_count: int | None = DEFAULT_POLL_COUNT,
        collect_history: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            transport: Transport to the radio module.
            settings: Settings written by pairing.
            consumer: Called with every decoded inbound frame; may be a
                coroutine function. Defaults to logging the frame.
            timeout: Deadline in seconds for every wait step.
            settle_delay: Pause after each acknowledged request.
            poll_interval: Pause between power/current polls.
            poll_count: Number of polls, None to poll until stop().
            collect_history: Request today's cumulative history.
            logger: Logger, defaults to the module logger.
        """
        self._transport = transport
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._consumer = consumer or (lambda frame: log_frame(frame, self._logger))
        self._timeout = timeout
        self._settle_delay = settle_delay
        self._poll_interval = poll_interval
        self._poll_count = poll_count
        self._collect_history = collect_history
        self._stop_requested = asyncio.Event()
        self._tid = 0
        self.step: OperationStep | None = None
        self.tunnel: TunnelAdapter | None = None
        self.polls = 0

    def _enter(self, step: OperationStep) -> OperationStep:
        self.step = step
        self._logger.debug("Operation step %s", step.name)
        return step

    def _next_tid(self) -> int:
        self._tid = (self._tid % 0xFFFF) + 1
        return self._tid

    async def stop(self) -> None:
        """Ask the polling loop to finish; the session then shuts down."""
        self._stop_requested.set()

    async def run(self) -> None:
        """
        Run the session until polling completes or stop() is called.

        Raises:
            TimeoutError: If a step waited longer than the timeout.
            DeviceRejection: If the module rejected a command.
            SessionAuthError: If PANA authentication failed.
            TransportError: If the byte stream failed.
        """
        settings = self._settings
        async with J11Session(self._transport, timeout=self._timeout, logger=self._logger) as session:
            await session.reset(self._enter(OperationStep.HARDWARE_RESET))
            await session.execute(self._enter(OperationStep.INITIAL_SETUP), commands.initial_setup(settings.channel))
            await session.execute(self._enter(OperationStep.SET_AUTH_INFO), commands.set_auth_info(settings.credentials))

            response = await session.execute(self._enter(OperationStep.ROUTE_B_START), commands.route_b_start())
            try:
                started = RouteBStartResult.from_payload(response.payload)
                self._logger.debug(
                    "Route B started: channel=%d pan_id=0x%04x mac=%016x rssi=%d",
                    started.channel,
                    started.pan_id,
                    started.mac_address,
                    started.rssi,
                )
            except ProtocolError as e:
                self._logger.debug("Route B start response not decoded: %s", e)

            await session.execute(self._enter(OperationStep.OPEN_UDP_PORT), commands.open_udp_port())
            await session.execute(self._enter(OperationStep.PANA_START), commands.pana_start())

            try:
                await self._run_secure_session(session)
            except TransportError:
                raise
            except BaseException:
                await self._stop_pana(session, quiet=True)
                raise
            else:
                await self._stop_pana(session)

    async def _run_secure_session(self, session: J11Session) -> None:
        step = self._enter(OperationStep.PANA_RESULT)
        notification = await session.await_notification(step, NotificationCode.PANA_RESULT)
        result = PanaResult.from_payload(notification.payload)
        try:
            raise_for_pana_result(result.result_code)
        except BRouteError as e:
            self._logger.error("%s: %s", step.name, e)
            raise
        mac = result.mac_address if result.mac_address is not None else self._settings.mac_address_int
        self._logger.info("Connection successful: %016x", mac)

        self._enter(OperationStep.DERIVE_ADDRESS)
        address = link_local_address(self._settings.mac_address_int)
        self._logger.debug("Meter address %s", address)

        self._enter(OperationStep.OPEN_TUNNEL)
        tunnel = TunnelAdapter(
            session.transport,
            session.demux.responses,
            session.demux.notifications,
            address,
            timeout=self._timeout,
            receiver=session.demux.receive,
            logger=self._logger,
        )
        self.tunnel = tunnel

        step = self._enter(OperationStep.INSTANCE_LIST)
        try:
            payload = await asyncio.wait_for(tunnel.receive_payload(), self._timeout)
        except asyncio.TimeoutError:
            error = TimeoutError("No instance list received", step=step, timeout_seconds=self._timeout)
            self._logger.error("%s", error)
            raise error from None
        await self._handle_payload(payload)

        self._enter(OperationStep.RECEIVE_LOOP)
        receiver = asyncio.create_task(self._receive_loop(tunnel), name="j11-tunnel-receiver")
        try:
            self._enter(OperationStep.POLLING)
            await self._poll(tunnel)
        finally:
            receiver.cancel()
            await asyncio.wait({receiver})
            if not receiver.cancelled() and receiver.exception() is not None:
                self._logger.debug("Tunnel receiver stopped: %s", receiver.exception())

    async def _stop_pana(self, session: J11Session, *, quiet: bool = False) -> None:
        step = self._enter(OperationStep.PANA_STOP)
        try:
            await session.execute(step, commands.pana_stop())
        except BRouteError as e:
            if not quiet:
                raise
            self._logger.warning("PANA stop failed: %s", e)
        else:
            self._logger.info("PANA session terminated")

    async def _handle_payload(self, payload: bytes) -> None:
        try:
            frame = EchonetFrame.decode(payload)
        except FormatError as e:
            self._logger.warning("Dropping malformed ECHONET Lite frame: %s", e)
            return
        try:
            result = self._consumer(frame)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._logger.exception("Frame consumer failed on %r", frame)

    async def _receive_loop(self, tunnel: TunnelAdapter) -> None:
        while True:
            try:
                payload = await tunnel.receive_payload()
            except FormatError as e:
                self._logger.warning("Dropping malformed UDP notification: %s", e)
                continue
            await self._handle_payload(payload)

    async def _request(self, tunnel: TunnelAdapter, frame: EchonetFrame) -> None:
        self._logger.debug("Requesting %r", frame)
        await tunnel.send(frame.encode())
        await asyncio.sleep(self._settle_delay)

    async def _wait_or_stop(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_requested.wait(), seconds)

    async def _poll(self, tunnel: TunnelAdapter) -> None:
        for epc in DEVICE_PROPERTIES:
            await self._request(tunnel, EchonetFrame.get_request(epc, tid=self._next_tid()))

        if self._collect_history:
            await self._request(
                tunnel,
                EchonetFrame.set_request(Property(HISTORY_DAY_PROPERTY, b"\x00"), tid=self._next_tid()),
            )
            await self._request(tunnel, EchonetFrame.get_request(HISTORY_PROPERTY, tid=self._next_tid()))

        await self._request(tunnel, EchonetFrame.get_request(CUMULATIVE_ENERGY_PROPERTY, tid=self._next_tid()))
        await self._wait_or_stop(self._poll_interval)

        while not self._stop_requested.is_set() and (self._poll_count is None or self.polls < self._poll_count):
            await self._request(tunnel, EchonetFrame.get_request(*POLLED_PROPERTIES, tid=self._next_tid()))
            self.polls += 1
            await self._wait_or_stop(self._poll_interval)


async def run(
    settings_path: str | Path,
    transport: AbstractTransport,
    *,
    consumer: FrameConsumer | None = None,
    timeout: float = ProtocolConstants.DEFAULT_RECEIVE_TIMEOUT,
    settle_delay: float = ProtocolConstants.SETTLE_DELAY,
    poll_interval: float = ProtocolConstants.POLL_INTERVAL,
    poll_count: int | None = DEFAULT_POLL_COUNT,
    collect_history: bool = True,
    logger: logging.Logger | None = None,
) -> None:
    """
    Load the settings file and run the operational session.

    Raises:
        SettingsError: If the settings file is missing or invalid.
        BRouteError: Any handshake or session failure.
    """
    settings = load_settings(settings_path)
    machine = OperationalStateMachine(
        transport,
        settings,
        consumer=consumer,
        timeout=timeout,
        settle_delay=settle_delay,
        poll_interval=poll_interval,
        poll_count=poll_count,
        collect_history=collect_history,
        logger=logger,
    )
    await machine.run()
