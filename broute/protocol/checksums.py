"""
16-bit additive checksum calculation.

The J11 protocol protects each datagram with two checksums:
- Header checksum: sum of unique code, command code and message length bytes
- Data checksum: sum of the payload bytes

Both keep only the lower 16 bits of the byte sum.
"""

from __future__ import annotations

import struct

from broute.protocol.constants import ProtocolConstants

_HEADER_PREFIX = struct.Struct(">IHH")


def calculate_checksum(data: bytes | bytearray | memoryview) -> int:
    """
    Calculate 16-bit additive checksum over the specified data.

    Algorithm: Sum all bytes, keep only lower 16 bits.

    Args:
        data: Data to checksum.

    Returns:
        16-bit checksum value (0-65535).

    Example:
        >>> calculate_checksum(b"\\xff" * 258)
        254
    """
    return sum(data) & ProtocolConstants.CHECKSUM_MASK


def header_checksum(unique_code: int, command_code: int, message_length: int) -> int:
    """
    Calculate the header checksum of a J11 datagram.

    Args:
        unique_code: 32-bit preamble.
        command_code: 16-bit command code.
        message_length: 16-bit message length.

    Returns:
        16-bit checksum over the big-endian encoding of the three fields.
    """
    return calculate_checksum(_HEADER_PREFIX.pack(unique_code, command_code, message_length))


def validate_checksum(data: bytes | bytearray | memoryview, expected: int) -> bool:
    """Check data against a received checksum."""
    return calculate_checksum(data) == expected
