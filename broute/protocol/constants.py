"""
J11 serial protocol command codes and constants.

Based on the BP35C0-J11 / BP35C2-J11 command reference for Route B
(Wi-SUN) operation.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Final


class UniqueCode(IntEnum):
    """
    J11 datagram preambles.

    The first four header bytes identify the direction of a datagram and
    double as the synchronisation pattern on the wire.
    """

    REQUEST = 0xD0EA83FC
    """Host to module command."""

    RESPONSE = 0xD0F9EE5D
    """Module to host response or notification."""


class CommandCode(IntEnum):
    """
    J11 request command codes (host to module).

    Grouped by function:
    - 0x0005-0x0008: UDP port and data transmission
    - 0x0051-0x005F: Route B setup, scan and PANA
    - 0x006B, 0x00D9: Module information and reset
    """

    UDP_PORT_OPEN = 0x0005
    """Open a UDP port for inbound datagrams."""

    TRANSMIT_DATA = 0x0008
    """Send a UDP datagram to a peer."""

    ACTIVE_SCAN = 0x0051
    """Active scan for Route B beacons."""

    ROUTE_B_START = 0x0053
    """Start Route B operation with the stored meter parameters."""

    SET_PANA_AUTH_INFO = 0x0054
    """Set Route B ID and password used for PANA."""

    PANA_START = 0x0056
    """Start PANA authentication against the meter."""

    PANA_TERMINATE = 0x0057
    """Terminate the PANA session."""

    ROUTE_B_TERMINATE = 0x0058
    """Stop Route B operation."""

    INITIAL_SETUP = 0x005F
    """Initial radio setup (operating mode and channel)."""

    GET_FIRMWARE_VERSION = 0x006B
    """Query module firmware version."""

    HARDWARE_RESET = 0x00D9
    """Hardware reset of the module."""


class ResponseCode(IntEnum):
    """
    J11 response codes (0x2000-0x2FFF).

    Each response code is its request code with 0x2000 added. The first
    payload byte carries the result (0x01 = success).
    """

    UDP_PORT_OPEN = 0x2005
    TRANSMIT_DATA = 0x2008
    ACTIVE_SCAN = 0x2051
    ROUTE_B_START = 0x2053
    SET_PANA_AUTH_INFO = 0x2054
    PANA_START = 0x2056
    PANA_TERMINATE = 0x2057
    ROUTE_B_TERMINATE = 0x2058
    INITIAL_SETUP = 0x205F
    GET_FIRMWARE_VERSION = 0x206B


class NotificationCode(IntEnum):
    """J11 asynchronous notification codes."""

    ACTIVE_SCAN = 0x4051
    """Active scan result for one channel."""

    UDP_RECEIVE = 0x6018
    """Inbound UDP datagram."""

    BOOT_COMPLETE = 0x6019
    """Module finished booting after a reset."""

    PANA_RESULT = 0x6028
    """Outcome of PANA authentication."""


class ProtocolConstants:
    """
    J11 protocol constants.

    Contains frame sizes, timing values, queue sizes, and fixed addressing
    values used throughout the protocol implementation.
    """

    # ===== Framing =====

    HEADER_SIZE: Final[int] = 12
    """Unique code(4) + command(2) + length(2) + header sum(2) + data sum(2)."""

    PREAMBLE_SIZE: Final[int] = 4
    """Size of the unique code used as synchronisation pattern."""

    MESSAGE_LENGTH_OVERHEAD: Final[int] = 4
    """Message length counts the two checksums plus the payload."""

    CHECKSUM_MASK: Final[int] = 0xFFFF
    """Checksums are 16-bit truncating byte sums."""

    # ===== Code Ranges =====

    RESPONSE_CODE_MIN: Final[int] = 0x2000
    RESPONSE_CODE_MAX: Final[int] = 0x2FFF

    RESULT_SUCCESS: Final[int] = 0x01
    """Success value of the first response payload byte."""

    SCAN_RESULT_BEACON: Final[int] = 0x00
    """Active scan notification result: a beacon was received."""

    # ===== Timing Constants (in seconds) =====

    DEFAULT_RECEIVE_TIMEOUT: Final[float] = 90.0
    """Deadline for every wait step of a handshake."""

    READ_POLL_INTERVAL: Final[float] = 0.05
    """Backoff when the byte stream has nothing to read."""

    SETTLE_DELAY: Final[float] = 1.0
    """Pause after each ECHONET Lite request."""

    POLL_INTERVAL: Final[float] = 30.0
    """Pause between instantaneous power polls."""

    # ===== Buffer Sizes =====

    QUEUE_DEPTH: Final[int] = 64
    """Capacity of the response and notification queues."""

    RECEIVE_BUFFER_SIZE: Final[int] = 1500
    """Largest inbound UDP payload, header included, is 1361 bytes."""

    # ===== Route B =====

    DEFAULT_CHANNEL: Final[int] = 0x04
    """Channel used for initial setup before a meter is known."""

    DEFAULT_SCAN_DURATION: Final[int] = 7
    """Active scan duration exponent (1-14)."""

    SCAN_CHANNEL_MASK: Final[bytes] = bytes([0x00, 0x03, 0xFF, 0xF0])
    """Channels 4-17."""

    ROUTE_B_ID_LENGTH: Final[int] = 32
    ROUTE_B_PASSWORD_LENGTH: Final[int] = 12
    SCAN_ID_SUFFIX_LENGTH: Final[int] = 8

    ECHONET_LITE_PORT: Final[int] = 0x0E1A
    """UDP port 3610 used by ECHONET Lite."""

    LINK_LOCAL_PREFIX: Final[int] = 0xFE80_0000_0000_0000
    """Upper 64 bits of an IPv6 link-local address."""

    LOCAL_ADMIN_MASK: Final[int] = 0x0200_0000_0000_0000
    """Universal/local bit of an EUI-64 interface identifier."""

    # ===== Serial Port Configuration =====

    DEFAULT_BAUD_RATE: Final[int] = 115200
    """Default baud rate of the J11 UART."""


def is_response_code(command_code: int) -> bool:
    """
    Check whether a command code belongs to a direct command response.

    Codes in 0x2000-0x2FFF answer a previously issued request; every other
    code is an asynchronous notification.
    """
    return ProtocolConstants.RESPONSE_CODE_MIN <= command_code <= ProtocolConstants.RESPONSE_CODE_MAX
