"""
Byte-stream interface to the J11 radio module.

The module speaks a framed binary protocol over its UART, but nothing at this
layer knows about frames: a transport hands out whatever bytes have arrived
and writes whatever it is given. Preamble search, length handling and
checksums belong to broute.protocol.FrameReader.

Two implementations ship with the package:
- AsyncSerialTransport talks to the module through pyserial-asyncio
- MockTransport replays canned or scripted bytes in tests
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType


class AbstractTransport(ABC):
    """
    Bidirectional byte stream to one radio module.

    A single reader task owns the inbound side for the lifetime of a session;
    writes come from whichever handshake step is running.

        async with AsyncSerialTransport("/dev/ttyUSB0") as transport:
            await transport.write(hardware_reset().encode())
            chunk = await transport.read(64)
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while reads and writes are possible."""
        ...

    @property
    @abstractmethod
    def port_name(self) -> str:
        """Device path or other label used in log messages."""
        ...

    @abstractmethod
    async def open(self) -> None:
        """
        Acquire the underlying device.

        Raises:
            TransportError: If the device cannot be opened or is already open.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the device. Closing a closed transport does nothing."""
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Send bytes to the module, normally one encoded request datagram.

        Raises:
            TransportError: If the transport is closed or the device fails.
        """
        ...

    @abstractmethod
    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Return whatever has arrived, at most `size` bytes.

        b"" means the line was quiet for `timeout` seconds (the transport's
        own poll interval when None). Callers needing a fixed count keep
        reading; the frame reader backs off on empty reads.

        Raises:
            TransportError: If the transport is closed or the device fails.
        """
        ...

    @abstractmethod
    def discard_buffers(self) -> None:
        """Drop bytes received but not yet read, and unsent output."""
        ...

    async def __aenter__(self) -> AbstractTransport:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
