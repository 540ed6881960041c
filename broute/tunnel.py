"""
UDP tunnel over the J11 secure session.

After PANA authentication the meter is reachable at its link-local
address. The adapter wraps outbound ECHONET Lite payloads in transmit-data
commands and unwraps inbound UDP receive notifications (0x6018).

Only one tunnel exists at a time: inbound notifications are not matched
against a connection identifier.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from broute.exceptions import DeviceRejection, FormatError, TimeoutError
from broute.models.records import TransmitResult, TunnelSession
from broute.protocol import commands
from broute.protocol.constants import CommandCode, NotificationCode, ProtocolConstants, ResponseCode

if TYPE_CHECKING:
    from ipaddress import IPv6Address

    from broute.protocol.datagram import Datagram
    from broute.transport.abc import AbstractTransport

    Receiver = Callable[[asyncio.Queue[Datagram]], Awaitable[Datagram]]


async def _queue_get(queue: asyncio.Queue[Datagram]) -> Datagram:
    return await queue.get()


class TunnelAdapter:
    """
    Datagram tunnel to the paired meter.

    Example:
        >>> tunnel = TunnelAdapter(transport, demux.responses, demux.notifications, address)
        >>> await tunnel.send(EchonetFrame.get_request(0xE7).encode())
        >>> frame = EchonetFrame.decode(await tunnel.receive_payload())

    Attributes:
        address: Link-local address of the meter.
        port: UDP port used as source and destination.
        session: Addressing of the most recent inbound datagram, None until
            one arrives.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        responses: asyncio.Queue[Datagram],
        notifications: asyncio.Queue[Datagram],
        address: IPv6Address,
        *,
        port: int = ProtocolConstants.ECHONET_LITE_PORT,
        timeout: float = ProtocolConstants.DEFAULT_RECEIVE_TIMEOUT,
        receiver: Receiver | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            transport: Transport written by send().
            responses: Queue carrying the transmit acknowledgments.
            notifications: Queue carrying inbound UDP notifications.
            address: Destination address.
            port: UDP port.
            timeout: Deadline for a transmit acknowledgment.
            receiver: Coroutine function taking a queue and returning its
                next datagram. StreamDemultiplexer.receive is used by the
                operational run so a stopped reader surfaces immediately.
            logger: Logger, defaults to the module logger.
        """
        self._transport = transport
        self._responses = responses
        self._notifications = notifications
        self._receiver = receiver or _queue_get
        self._timeout = timeout
        self._logger = logger or logging.getLogger(__name__)
        self.address = address
        self.port = port
        self.session: TunnelSession | None = None

    async def send(self, payload: bytes) -> TransmitResult:
        """
        Transmit one UDP payload and wait for its acknowledgment.

        Raises:
            DeviceRejection: If the module reports a failed transmission;
                the raw response (digest included) is attached.
            TimeoutError: If no acknowledgment arrives in time.
        """
        datagram = commands.transmit_data(self.address, payload, self.port)
        self._logger.debug("Transmitting %d bytes to [%s]:%d", len(payload), self.address, self.port)
        await self._transport.write(datagram.encode())

        async def acknowledgment() -> Datagram:
            while True:
                response = await self._receiver(self._responses)
                if response.command_code == ResponseCode.TRANSMIT_DATA:
                    return response
                self._logger.debug("Ignoring %r while waiting for transmit acknowledgment", response)

        try:
            response = await asyncio.wait_for(acknowledgment(), self._timeout)
        except asyncio.TimeoutError:
            error = TimeoutError(
                "No transmit acknowledgment received",
                step=CommandCode.TRANSMIT_DATA,
                timeout_seconds=self._timeout,
            )
            self._logger.error("%s", error)
            raise error from None

        result = TransmitResult.from_payload(response.payload)
        if not response.is_success:
            error = DeviceRejection(
                response,
                step=CommandCode.TRANSMIT_DATA,
                message=f"transmit failed with result 0x{result.result_code:02X} (digest {result.digest.hex()})",
            )
            self._logger.error("%s", error)
            raise error
        return result

    async def receive(self, buffer: bytearray | memoryview) -> int:
        """
        Wait for the next inbound UDP datagram and copy its payload.

        Other notifications are logged and discarded. A payload longer than
        the buffer is truncated.

        Returns:
            Number of bytes copied into buffer.

        Raises:
            FormatError: If the notification header is truncated.
        """
        while True:
            notification = await self._receiver(self._notifications)
            if notification.command_code == NotificationCode.UDP_RECEIVE:
                break
            self._logger.debug("Discarding %r", notification)

        payload = notification.payload
        if len(payload) < TunnelSession.HEADER_SIZE:
            raise FormatError(
                f"UDP receive notification too short: {len(payload)} bytes",
                raw_data=payload,
            )

        self.session, data = TunnelSession.from_payload(payload)
        data = data[: self.session.data_length]
        if len(data) > len(buffer):
            self._logger.warning("Truncating %d byte datagram to %d bytes", len(data), len(buffer))
            data = data[: len(buffer)]
        buffer[: len(data)] = data
        return len(data)

    async def receive_payload(self) -> bytes:
        """Wait for the next inbound UDP datagram and return its payload."""
        buffer = bytearray(ProtocolConstants.RECEIVE_BUFFER_SIZE)
        size = await self.receive(buffer)
        return bytes(buffer[:size])
