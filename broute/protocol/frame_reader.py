"""
J11 protocol frame reading.

This module turns the raw inbound byte stream into validated datagrams.
The radio module prefixes every response and notification with the
4-byte unique code 0xD0F9EE5D, which doubles as a synchronisation
pattern:

1. **Preamble search**: bytes are shifted one at a time through a 4-byte
   rolling window until it equals the response unique code.
2. **Header**: the remaining 8 header bytes are read and the header
   checksum is verified. A mismatch discards the candidate and the
   preamble search resumes.
3. **Payload**: message length - 4 bytes are read and the data checksum is
   verified. A mismatch discards the candidate and the preamble search
   resumes.

Checksum failures are line noise, not errors: they are logged at debug
level and never raised. An empty read is treated as "no data yet" and
retried after a short backoff; the wait is cancelled by cancelling the
task that drives the reader.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import AsyncIterator
from enum import Enum, auto
from typing import TYPE_CHECKING

from broute.exceptions import FramingError
from broute.protocol.constants import ProtocolConstants, UniqueCode
from broute.protocol.datagram import Datagram

if TYPE_CHECKING:
    from broute.transport.abc import AbstractTransport


_WINDOW_MASK = 0xFFFFFFFF
_PREAMBLE = struct.Struct(">I")


class FrameReadResult(Enum):
    """
    Result codes for a single frame read.

    Anything other than SUCCESS means the candidate was discarded and the
    reader resynchronised on the next preamble.
    """

    SUCCESS = auto()
    """Datagram was read and validated."""

    HEADER_CHECKSUM_MISMATCH = auto()
    """Header checksum (or message length) invalid; candidate discarded."""

    DATA_CHECKSUM_MISMATCH = auto()
    """Payload checksum invalid; candidate discarded."""


class FrameReader:
    """
    Preamble-synchronised J11 datagram reader.

    The reader owns the inbound side of the transport exclusively; only one
    task may drive it.

    Example:
        >>> reader = FrameReader(transport)
        >>> async for datagram in reader.frames():
        ...     print(datagram)

    Attributes:
        resync_count: Number of candidates discarded so far.
        skipped_bytes: Bytes dropped while searching for a preamble.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        *,
        poll_interval: float = ProtocolConstants.READ_POLL_INTERVAL,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._poll_interval = poll_interval
        self._logger = logger or logging.getLogger(__name__)
        self.resync_count = 0
        self.skipped_bytes = 0

    async def _read_exactly(self, size: int) -> bytes:
        """Read exactly `size` bytes, retrying short and empty reads."""
        buffer = bytearray()
        while len(buffer) < size:
            chunk = await self._transport.read(size - len(buffer))
            if not chunk:
                await asyncio.sleep(self._poll_interval)
                continue
            buffer.extend(chunk)
        return bytes(buffer)

    async def _synchronise(self) -> None:
        """Discard input until the response preamble has been consumed."""
        window = 0
        shifted = 0
        while window != UniqueCode.RESPONSE:
            byte = await self._read_exactly(1)
            window = ((window << 8) | byte[0]) & _WINDOW_MASK
            shifted += 1

        dropped = shifted - ProtocolConstants.PREAMBLE_SIZE
        if dropped:
            self.skipped_bytes += dropped
            self._logger.debug("Skipped %d bytes before preamble", dropped)

    async def read(self) -> tuple[FrameReadResult, Datagram | None]:
        """
        Read one candidate datagram from the stream.

        Returns:
            Tuple of (result, datagram):
            - On success: (SUCCESS, Datagram)
            - On checksum failure: (HEADER_/DATA_CHECKSUM_MISMATCH, None)

        Raises:
            TransportError: If the underlying transport fails.
            asyncio.CancelledError: If the driving task is cancelled.
        """
        await self._synchronise()

        rest = await self._read_exactly(ProtocolConstants.HEADER_SIZE - ProtocolConstants.PREAMBLE_SIZE)
        header_bytes = _PREAMBLE.pack(UniqueCode.RESPONSE) + rest
        header = Datagram.parse_header(header_bytes)

        if not header.is_valid:
            self.resync_count += 1
            self._logger.debug(
                "Header checksum mismatch (command=0x%04X length=%d checksum=0x%04X), resynchronising",
                header.command_code,
                header.message_length,
                header.header_checksum,
            )
            return FrameReadResult.HEADER_CHECKSUM_MISMATCH, None

        payload = await self._read_exactly(header.payload_length)

        try:
            datagram = Datagram.decode(header_bytes, payload)
        except FramingError as e:
            self.resync_count += 1
            self._logger.debug("Discarding command 0x%04X: %s", header.command_code, e)
            return FrameReadResult.DATA_CHECKSUM_MISMATCH, None

        return FrameReadResult.SUCCESS, datagram

    async def frames(self) -> AsyncIterator[Datagram]:
        """
        Yield validated datagrams forever.

        Discarded candidates are skipped. The generator ends only by
        cancellation or a transport error.
        """
        while True:
            result, datagram = await self.read()
            if result is FrameReadResult.SUCCESS and datagram is not None:
                yield datagram
