"""
Protocol layer for J11 communication.

This module contains the low-level protocol handling:
- Unique, command, response and notification codes
- Checksum calculation
- Datagram encoding/decoding
- Preamble-synchronised frame reading
- Response/notification demultiplexing
- Request command builders
"""

from broute.protocol.checksums import calculate_checksum, header_checksum, validate_checksum
from broute.protocol.constants import (
    CommandCode,
    NotificationCode,
    ProtocolConstants,
    ResponseCode,
    UniqueCode,
    is_response_code,
)
from broute.protocol.datagram import Datagram, DatagramHeader
from broute.protocol.demux import StreamDemultiplexer
from broute.protocol.frame_reader import FrameReader, FrameReadResult

__all__ = [
    # Constants
    "CommandCode",
    "NotificationCode",
    "ProtocolConstants",
    "ResponseCode",
    "UniqueCode",
    "is_response_code",
    # Checksums
    "calculate_checksum",
    "header_checksum",
    "validate_checksum",
    # Datagrams
    "Datagram",
    "DatagramHeader",
    # Stream handling
    "FrameReader",
    "FrameReadResult",
    "StreamDemultiplexer",
]
