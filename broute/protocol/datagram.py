"""
J11 datagram encoding and decoding.

Wire format (all fields big-endian):

    +-------------+--------------+----------------+-------------+-------------+---------+
    | unique code | command code | message length | header sum  | data sum    | payload |
    |   4 bytes   |   2 bytes    |    2 bytes     |   2 bytes   |   2 bytes   |  N      |
    +-------------+--------------+----------------+-------------+-------------+---------+

- message length = N + 4 (the two checksum fields are counted, the rest of
  the header is not)
- header sum covers unique code, command code and message length
- data sum covers the payload
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import NamedTuple

from broute.exceptions import FramingError
from broute.protocol.checksums import calculate_checksum, header_checksum
from broute.protocol.constants import (
    CommandCode,
    NotificationCode,
    ProtocolConstants,
    ResponseCode,
    UniqueCode,
    is_response_code,
)

_HEADER = struct.Struct(">IHHHH")


class DatagramHeader(NamedTuple):
    """Decoded fixed-size datagram header."""

    unique_code: int
    command_code: int
    message_length: int
    header_checksum: int
    data_checksum: int

    @property
    def payload_length(self) -> int:
        """Number of payload bytes announced by the header."""
        return self.message_length - ProtocolConstants.MESSAGE_LENGTH_OVERHEAD

    @property
    def is_valid(self) -> bool:
        """Check the header checksum and the minimum message length."""
        return (
            self.message_length >= ProtocolConstants.MESSAGE_LENGTH_OVERHEAD
            and header_checksum(self.unique_code, self.command_code, self.message_length)
            == self.header_checksum
        )


def _code_name(code: int) -> str:
    for enum_type in (CommandCode, ResponseCode, NotificationCode):
        try:
            return enum_type(code).name
        except ValueError:
            continue
    return f"0x{code:04X}"


@dataclass(frozen=True)
class Datagram:
    """
    A J11 datagram.

    Instances are immutable. Use request() or response() to build a
    datagram with consistent length and checksum fields; decode() to
    validate one received from the wire.

    Attributes:
        unique_code: Direction preamble (see UniqueCode).
        command_code: Command, response or notification code.
        message_length: Payload length plus 4.
        header_checksum: Checksum of the first 8 header bytes.
        data_checksum: Checksum of the payload.
        payload: Raw payload bytes.
    """

    unique_code: int
    command_code: int
    message_length: int
    header_checksum: int
    data_checksum: int
    payload: bytes = b""

    @classmethod
    def build(cls, unique_code: int, command_code: int, payload: bytes = b"") -> Datagram:
        """
        Build a checksum-complete datagram.

        Args:
            unique_code: Direction preamble.
            command_code: 16-bit command code.
            payload: Payload bytes.

        Returns:
            Datagram with message length and both checksums filled in.
        """
        payload = bytes(payload)
        message_length = len(payload) + ProtocolConstants.MESSAGE_LENGTH_OVERHEAD
        return cls(
            unique_code=unique_code,
            command_code=command_code,
            message_length=message_length,
            header_checksum=header_checksum(unique_code, command_code, message_length),
            data_checksum=calculate_checksum(payload),
            payload=payload,
        )

    @classmethod
    def request(cls, command_code: int, payload: bytes = b"") -> Datagram:
        """Build a host-to-module request datagram."""
        return cls.build(UniqueCode.REQUEST, command_code, payload)

    @classmethod
    def response(cls, command_code: int, payload: bytes = b"") -> Datagram:
        """Build a module-to-host response or notification datagram."""
        return cls.build(UniqueCode.RESPONSE, command_code, payload)

    @staticmethod
    def parse_header(header_bytes: bytes | bytearray | memoryview) -> DatagramHeader:
        """
        Decode the fixed-size header without validating it.

        Raises:
            FramingError: If the buffer is not exactly HEADER_SIZE bytes.
        """
        if len(header_bytes) != ProtocolConstants.HEADER_SIZE:
            raise FramingError(
                f"Header must be {ProtocolConstants.HEADER_SIZE} bytes, got {len(header_bytes)}"
            )
        return DatagramHeader(*_HEADER.unpack(bytes(header_bytes)))

    @classmethod
    def decode(
        cls,
        header_bytes: bytes | bytearray | memoryview,
        payload_bytes: bytes | bytearray | memoryview = b"",
    ) -> Datagram:
        """
        Reconstruct a datagram from its header and payload.

        Args:
            header_bytes: Exactly 12 header bytes.
            payload_bytes: Payload following the header.

        Returns:
            The validated datagram.

        Raises:
            FramingError: If the message length or either checksum does not
                match.
        """
        header = cls.parse_header(header_bytes)
        payload = bytes(payload_bytes)

        expected_length = len(payload) + ProtocolConstants.MESSAGE_LENGTH_OVERHEAD
        if header.message_length != expected_length:
            raise FramingError(
                "Message length mismatch",
                expected=expected_length,
                received=header.message_length,
            )

        expected_header = header_checksum(header.unique_code, header.command_code, header.message_length)
        if header.header_checksum != expected_header:
            raise FramingError(
                "Header checksum mismatch",
                expected=expected_header,
                received=header.header_checksum,
            )

        expected_data = calculate_checksum(payload)
        if header.data_checksum != expected_data:
            raise FramingError(
                "Data checksum mismatch",
                expected=expected_data,
                received=header.data_checksum,
            )

        return cls(
            unique_code=header.unique_code,
            command_code=header.command_code,
            message_length=header.message_length,
            header_checksum=header.header_checksum,
            data_checksum=header.data_checksum,
            payload=payload,
        )

    def encode(self) -> bytes:
        """Serialize to wire format: big-endian header followed by payload."""
        return (
            _HEADER.pack(
                self.unique_code,
                self.command_code,
                self.message_length,
                self.header_checksum,
                self.data_checksum,
            )
            + self.payload
        )

    @property
    def is_response(self) -> bool:
        """Check if this datagram answers a previously issued request."""
        return is_response_code(self.command_code)

    @property
    def is_notification(self) -> bool:
        """Check if this datagram is an asynchronous notification."""
        return not self.is_response

    @property
    def result_code(self) -> int | None:
        """First payload byte (the result of a response), None if empty."""
        return self.payload[0] if self.payload else None

    @property
    def is_success(self) -> bool:
        """Check if the result code reports success."""
        return self.result_code == ProtocolConstants.RESULT_SUCCESS

    def __repr__(self) -> str:
        name = _code_name(self.command_code)
        if self.payload:
            return f"Datagram({name}, payload={self.payload.hex()})"
        return f"Datagram({name})"
