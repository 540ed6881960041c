"""
Command/await machinery shared by the pairing and operational handshakes.

A J11Session owns one connection to the radio module: the transport, the
FrameReader draining it and the StreamDemultiplexer task routing its
datagrams. Handshake steps are built from three primitives:

- send a request datagram
- wait, bounded by the session timeout, for the first datagram with a
  given code on the response or notification queue
- check the success byte of a response

Datagrams of another code that arrive while a step waits are logged at
debug level and dropped; correlation is by code only, the module has no
request identifiers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from broute.exceptions import DeviceRejection, TimeoutError
from broute.protocol import commands
from broute.protocol.constants import NotificationCode, ProtocolConstants
from broute.protocol.demux import StreamDemultiplexer
from broute.protocol.frame_reader import FrameReader

if TYPE_CHECKING:
    from enum import Enum
    from types import TracebackType

    from broute.protocol.datagram import Datagram
    from broute.transport.abc import AbstractTransport


_RESPONSE_OFFSET = 0x2000


class J11Session:
    """
    One connection to a J11 module.

    The session opens the transport on start() unless it is already open,
    and closes it on stop() only if it opened it.

    Example:
        >>> async with J11Session(transport, timeout=90) as session:
        ...     await session.reset(Step.HARDWARE_RESET)
        ...     await session.execute(Step.INITIAL_SETUP, commands.initial_setup(4))

    Attributes:
        timeout: Deadline in seconds for every wait step.
        frame_reader: Reader owning the inbound side of the transport.
        demux: Demultiplexer feeding the response and notification queues.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        *,
        timeout: float = ProtocolConstants.DEFAULT_RECEIVE_TIMEOUT,
        queue_depth: int = ProtocolConstants.QUEUE_DEPTH,
        poll_interval: float = ProtocolConstants.READ_POLL_INTERVAL,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)
        self.timeout = timeout
        self.frame_reader = FrameReader(transport, poll_interval=poll_interval, logger=self._logger)
        self.demux = StreamDemultiplexer(self.frame_reader, queue_depth=queue_depth, logger=self._logger)
        self._opened_transport = False

    @property
    def transport(self) -> AbstractTransport:
        """Get the underlying transport."""
        return self._transport

    @property
    def is_running(self) -> bool:
        """Check if the stream demultiplexer is alive."""
        return self.demux.is_running

    async def start(self) -> None:
        """Open the transport if needed and start demultiplexing."""
        if not self._transport.is_open:
            self._logger.debug("Opening transport %s", self._transport.port_name)
            await self._transport.open()
            self._opened_transport = True
        self.demux.start()

    async def stop(self) -> None:
        """Stop demultiplexing and close the transport if start() opened it."""
        await self.demux.stop()
        if self._opened_transport:
            self._opened_transport = False
            await self._transport.close()

    async def send(self, datagram: Datagram) -> None:
        """Write one request datagram."""
        self._logger.debug("Sending %r", datagram)
        await self._transport.write(datagram.encode())

    async def _wait_for(
        self,
        queue: asyncio.Queue[Datagram],
        step: Enum | str,
        code: int,
        timeout: float | None,
    ) -> Datagram:
        async def first_match() -> Datagram:
            while True:
                datagram = await self.demux.receive(queue)
                if datagram.command_code == code:
                    return datagram
                self._logger.debug("Ignoring %r while waiting for 0x%04X", datagram, code)

        timeout = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(first_match(), timeout)
        except asyncio.TimeoutError:
            error = TimeoutError(f"No 0x{code:04X} received", step=step, timeout_seconds=timeout)
            self._logger.error("%s", error)
            raise error from None

    async def await_response(self, step: Enum | str, code: int, *, timeout: float | None = None) -> Datagram:
        """
        Wait for the next response with the given code.

        Raises:
            TimeoutError: If none arrives before the deadline; names the step.
            TransportError: If the stream reader stopped.
        """
        return await self._wait_for(self.demux.responses, step, code, timeout)

    async def await_notification(
        self,
        step: Enum | str,
        code: int,
        *,
        timeout: float | None = None,
    ) -> Datagram:
        """
        Wait for the next notification with the given code.

        Raises:
            TimeoutError: If none arrives before the deadline; names the step.
            TransportError: If the stream reader stopped.
        """
        return await self._wait_for(self.demux.notifications, step, code, timeout)

    def check_success(self, step: Enum | str, datagram: Datagram) -> Datagram:
        """
        Verify the result byte of a response.

        Raises:
            DeviceRejection: If the result byte is not 0x01.
        """
        if not datagram.is_success:
            error = DeviceRejection(datagram, step=step)
            self._logger.error("%s", error)
            raise error
        return datagram

    async def execute(self, step: Enum | str, request: Datagram, *, timeout: float | None = None) -> Datagram:
        """
        Send a request and wait for its successful response.

        Returns:
            The response datagram.

        Raises:
            TimeoutError: If the response does not arrive in time.
            DeviceRejection: If the response reports failure.
        """
        await self.send(request)
        response = await self.await_response(step, request.command_code + _RESPONSE_OFFSET, timeout=timeout)
        self.check_success(step, response)
        self._logger.debug("%s: ok", getattr(step, "name", step))
        return response

    async def reset(self, step: Enum | str, *, timeout: float | None = None) -> Datagram:
        """Reset the module and wait for its boot-complete notification."""
        await self.send(commands.hardware_reset())
        boot = await self.await_notification(step, NotificationCode.BOOT_COMPLETE, timeout=timeout)
        self._logger.debug("%s: module booted", getattr(step, "name", step))
        return boot

    async def __aenter__(self) -> J11Session:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
