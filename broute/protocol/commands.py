"""
J11 request command builders.

Every builder returns a checksum-complete request Datagram. Commands
without a payload are built once at import time and returned as shared
immutable constants; commands with a payload compute their checksums from
the actual payload bytes.
"""

from __future__ import annotations

import struct
from ipaddress import IPv6Address
from typing import TYPE_CHECKING, Final

from broute.protocol.constants import CommandCode, ProtocolConstants
from broute.protocol.datagram import Datagram

if TYPE_CHECKING:
    from broute.models.records import RouteBCredentials

_UINT16 = struct.Struct(">H")

# Operating mode byte of the initial setup command: dual stack, Route B
_INITIAL_SETUP_MODE: Final[int] = 0x05
# Active scan "ID set" flag: filter beacons by the pairing ID
_SCAN_PAIRING_ID_FLAG: Final[int] = 0x01

_GET_FIRMWARE_VERSION: Final = Datagram.request(CommandCode.GET_FIRMWARE_VERSION)
_HARDWARE_RESET: Final = Datagram.request(CommandCode.HARDWARE_RESET)
_ROUTE_B_START: Final = Datagram.request(CommandCode.ROUTE_B_START)
_ROUTE_B_TERMINATE: Final = Datagram.request(CommandCode.ROUTE_B_TERMINATE)
_PANA_START: Final = Datagram.request(CommandCode.PANA_START)
_PANA_TERMINATE: Final = Datagram.request(CommandCode.PANA_TERMINATE)


def get_firmware_version() -> Datagram:
    """Query the module firmware version."""
    return _GET_FIRMWARE_VERSION


def hardware_reset() -> Datagram:
    """Reset the module; it answers with a boot-complete notification."""
    return _HARDWARE_RESET


def initial_setup(channel: int = ProtocolConstants.DEFAULT_CHANNEL) -> Datagram:
    """
    Initial radio setup.

    Args:
        channel: Radio channel number (4-17).

    Raises:
        ValueError: If channel does not fit in one byte.
    """
    if not 0 <= channel <= 0xFF:
        raise ValueError(f"Channel must be 0-255, got {channel}")
    return Datagram.request(CommandCode.INITIAL_SETUP, bytes([_INITIAL_SETUP_MODE, 0x00, channel, 0x00]))


def set_auth_info(credentials: RouteBCredentials) -> Datagram:
    """Set the Route B ID (32 bytes) and password (12 bytes) used for PANA."""
    return Datagram.request(CommandCode.SET_PANA_AUTH_INFO, credentials.route_b_id + credentials.password)


def active_scan(scan_duration: int, credentials: RouteBCredentials) -> Datagram:
    """
    Start an active scan for Route B beacons.

    Payload: duration(1) channel mask(4) id flag(1) last 8 bytes of the ID(8)

    Args:
        scan_duration: Scan duration exponent (1-14).
        credentials: Route B credentials; the ID suffix filters beacons.

    Raises:
        ValueError: If scan_duration is outside 1-14.
    """
    if not 1 <= scan_duration <= 14:
        raise ValueError(f"Scan duration must be 1-14, got {scan_duration}")
    payload = (
        bytes([scan_duration])
        + ProtocolConstants.SCAN_CHANNEL_MASK
        + bytes([_SCAN_PAIRING_ID_FLAG])
        + credentials.scan_id
    )
    return Datagram.request(CommandCode.ACTIVE_SCAN, payload)


def route_b_start() -> Datagram:
    """Start Route B operation."""
    return _ROUTE_B_START


def route_b_stop() -> Datagram:
    """Stop Route B operation."""
    return _ROUTE_B_TERMINATE


def open_udp_port(port: int = ProtocolConstants.ECHONET_LITE_PORT) -> Datagram:
    """Open a UDP port (defaults to the ECHONET Lite port 3610)."""
    return Datagram.request(CommandCode.UDP_PORT_OPEN, _UINT16.pack(port))


def pana_start() -> Datagram:
    """Start PANA authentication against the paired meter."""
    return _PANA_START


def pana_stop() -> Datagram:
    """Terminate the PANA session."""
    return _PANA_TERMINATE


def transmit_data(
    address: IPv6Address,
    payload: bytes,
    port: int = ProtocolConstants.ECHONET_LITE_PORT,
) -> Datagram:
    """
    Send a UDP datagram through the secure session.

    Payload: address(16) source port(2) destination port(2) length(2) data

    Args:
        address: 128-bit destination address.
        payload: UDP payload.
        port: Used as both source and destination port.

    Raises:
        ValueError: If address is not IPv6 or payload exceeds 65535 bytes.
    """
    if not isinstance(address, IPv6Address):
        raise ValueError(f"Destination must be an IPv6 address, got {address!r}")
    if len(payload) > 0xFFFF:
        raise ValueError(f"Payload too large: {len(payload)} bytes")
    data = (
        address.packed
        + _UINT16.pack(port)
        + _UINT16.pack(port)
        + _UINT16.pack(len(payload))
        + bytes(payload)
    )
    return Datagram.request(CommandCode.TRANSMIT_DATA, data)
