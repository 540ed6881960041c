"""
Transport layer for J11 protocol communication.

This package provides transport implementations for the byte stream to
and from the radio module.

Available transports:
- AsyncSerialTransport: Async serial port using pyserial-asyncio
- MockTransport: Mock transport for testing without hardware

Example:
    >>> from broute.transport import AsyncSerialTransport
    >>> async with AsyncSerialTransport("/dev/ttyUSB0") as transport:
    ...     await transport.write(datagram.encode())
"""

from broute.transport.abc import AbstractTransport
from broute.transport.mock import MockTransport, ScriptedMockTransport
from broute.transport.serial_async import AsyncSerialTransport

__all__ = [
    "AbstractTransport",
    "AsyncSerialTransport",
    "MockTransport",
    "ScriptedMockTransport",
]
