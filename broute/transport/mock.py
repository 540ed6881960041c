"""
Mock transport for testing.

This module provides a mock transport implementation that allows testing
the J11 protocol client without the radio module. Inbound bytes can be
pre-loaded, generated from a callback, or scripted per written command.

Example:
    >>> from broute.transport import MockTransport
    >>> from broute.protocol.datagram import Datagram
    >>>
    >>> mock = MockTransport()
    >>> mock.add_response(Datagram.response(0x6019).encode())  # boot complete
"""

from __future__ import annotations

import asyncio
from typing import Callable

from broute.exceptions import TransportError
from broute.transport.abc import AbstractTransport


class MockTransport(AbstractTransport):
    """
    Mock transport for testing without hardware.

    The transport behaves like a byte stream: everything added with
    add_response() is appended to a single read buffer and handed out in
    order, in chunks no larger than the requested size. All written data
    is recorded for verification in tests.

    Attributes:
        written_data: List of all bytes written to the transport.
    """

    def __init__(
        self,
        port_name: str = "mock://test",
        max_chunk: int | None = None,
    ) -> None:
        """
        Initialize the mock transport.

        Args:
            port_name: Identifier for the mock transport.
            max_chunk: Upper bound on bytes returned per read, to exercise
                short-read handling. None returns as much as requested.
        """
        self._port_name = port_name
        self._max_chunk = max_chunk
        self._is_open = False
        self._written_data: list[bytes] = []
        self._read_buffer = bytearray()
        self._read_error: Exception | None = None
        self._response_callback: Callable[[bytes], bytes | None] | None = None

    @property
    def is_open(self) -> bool:
        """Check if the mock transport is open."""
        return self._is_open

    @property
    def port_name(self) -> str:
        """Get the mock port name."""
        return self._port_name

    @property
    def written_data(self) -> list[bytes]:
        """Get all data written to the transport."""
        return self._written_data.copy()

    @property
    def last_written(self) -> bytes | None:
        """Get the most recently written data."""
        return self._written_data[-1] if self._written_data else None

    @property
    def pending(self) -> int:
        """Number of inbound bytes not yet read."""
        return len(self._read_buffer)

    def add_response(self, response: bytes) -> None:
        """
        Append bytes to the inbound stream.

        Args:
            response: Bytes to return on subsequent reads.
        """
        self._read_buffer.extend(response)

    def add_responses(self, *responses: bytes) -> None:
        """
        Append several chunks to the inbound stream.

        Args:
            *responses: Multiple byte chunks to add.
        """
        for response in responses:
            self._read_buffer.extend(response)

    def set_response_callback(
        self,
        callback: Callable[[bytes], bytes | None] | None,
    ) -> None:
        """
        Set a callback to dynamically generate inbound bytes.

        The callback receives the written data; bytes it returns are appended
        to the inbound stream.
        """
        self._response_callback = callback

    def set_read_error(self, error: Exception | None) -> None:
        """Make the next read raise the given exception."""
        self._read_error = error

    def clear(self) -> None:
        """Clear all written data and pending inbound bytes."""
        self._written_data.clear()
        self._read_buffer.clear()

    def clear_written(self) -> None:
        """Clear only the written data history."""
        self._written_data.clear()

    async def open(self) -> None:
        """Open the mock transport."""
        if self._is_open:
            raise TransportError("Mock transport already open")
        self._is_open = True

    async def close(self) -> None:
        """Close the mock transport."""
        self._is_open = False

    async def write(self, data: bytes) -> None:
        """
        Write data to the mock transport.

        Records the written data and optionally triggers response callback.

        Raises:
            TransportError: If transport is not open.
        """
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))

        if self._response_callback:
            response = self._response_callback(bytes(data))
            if response is not None:
                self._read_buffer.extend(response)

    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Read up to `size` buffered bytes.

        Returns b"" when the buffer is empty, like a serial port read that
        times out.

        Raises:
            TransportError: If transport is not open or a read error was set.
        """
        if not self._is_open:
            raise TransportError("Mock transport not open")

        if self._read_error is not None:
            error, self._read_error = self._read_error, None
            raise error

        # Let other tasks run, as a real port read would
        await asyncio.sleep(0)

        if self._max_chunk is not None:
            size = min(size, self._max_chunk)

        result = bytes(self._read_buffer[:size])
        del self._read_buffer[:size]
        return result

    def discard_buffers(self) -> None:
        """Discard pending data in buffers."""
        self._read_buffer.clear()

    def assert_written(self, expected: bytes, index: int = -1) -> None:
        """
        Assert that specific data was written.

        Args:
            expected: Expected bytes.
            index: Index in written_data list (-1 for last).

        Raises:
            AssertionError: If data doesn't match.
        """
        if not self._written_data:
            raise AssertionError("No data written to mock transport")

        actual = self._written_data[index]
        if actual != expected:
            raise AssertionError(f"Written data mismatch: expected {expected.hex()}, got {actual.hex()}")

    def assert_write_count(self, expected: int) -> None:
        """
        Assert number of write operations.

        Raises:
            AssertionError: If count doesn't match.
        """
        actual = len(self._written_data)
        if actual != expected:
            raise AssertionError(f"Write count mismatch: expected {expected}, got {actual}")


class ScriptedMockTransport(MockTransport):
    """
    Mock transport with scripted request/response pairs.

    Each write consumes the next script entry and appends its response to
    the inbound stream. A recorded handshake can be replayed this way.

    Example:
        >>> mock = ScriptedMockTransport()
        >>> mock.expect(request=hardware_reset().encode(), response=boot_complete)
        >>> mock.expect(response=initial_setup_ack)
    """

    def __init__(self, port_name: str = "mock://scripted", max_chunk: int | None = None) -> None:
        super().__init__(port_name, max_chunk)
        self._script: list[tuple[bytes | None, bytes]] = []
        self._script_index = 0

    @property
    def remaining_steps(self) -> int:
        """Number of script entries not yet consumed."""
        return len(self._script) - self._script_index

    def expect(
        self,
        response: bytes,
        request: bytes | None = None,
    ) -> None:
        """
        Add an expected request/response pair.

        Args:
            response: Bytes appended to the inbound stream (may be empty).
            request: Expected request (None to match any).
        """
        self._script.append((request, response))

    async def write(self, data: bytes) -> None:
        """Write with script validation."""
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))

        if self._script_index < len(self._script):
            expected_request, response = self._script[self._script_index]

            if expected_request is not None and data != expected_request:
                raise AssertionError(
                    f"Script mismatch at step {self._script_index}: "
                    f"expected {expected_request.hex()}, got {bytes(data).hex()}"
                )

            self._read_buffer.extend(response)
            self._script_index += 1

    def reset_script(self) -> None:
        """Reset script to beginning."""
        self._script_index = 0
        self._read_buffer.clear()

    def clear_script(self) -> None:
        """Clear all scripted expectations."""
        self._script.clear()
        self._script_index = 0
