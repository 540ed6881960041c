"""
Pydantic models for J11 protocol records.

This module defines the value objects decoded from, or embedded into, J11
datagram payloads, implemented as immutable Pydantic models with
validation.

Design principles:
- All models are frozen (immutable)
- Fixed-size protocol fields are validated at construction
- from_payload() classmethods decode the documented payload layouts
"""

from __future__ import annotations

import struct
from ipaddress import IPv6Address
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from broute.exceptions import ProtocolError
from broute.protocol.constants import ProtocolConstants

_UINT16 = struct.Struct(">H")
_UINT64 = struct.Struct(">Q")


def _to_int8(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


def _require_length(payload: bytes, minimum: int, record_type: str) -> None:
    if len(payload) < minimum:
        raise ProtocolError(f"{record_type} payload too short: need {minimum} bytes, got {len(payload)}")


class RouteBCredentials(BaseModel):
    """
    Route B authentication ID and password.

    The ID is exactly 32 bytes and the password exactly 12 bytes; both are
    embedded verbatim into the PANA auth-info command. Text input is
    encoded as ASCII.

    Example:
        >>> creds = RouteBCredentials(route_b_id="0" * 32, password="PASSWORD1234")
        >>> creds.scan_id
        b'00000000'
    """

    model_config = ConfigDict(frozen=True)

    route_b_id: bytes = Field(
        min_length=ProtocolConstants.ROUTE_B_ID_LENGTH,
        max_length=ProtocolConstants.ROUTE_B_ID_LENGTH,
        description="32-byte Route B authentication ID",
    )
    password: bytes = Field(
        min_length=ProtocolConstants.ROUTE_B_PASSWORD_LENGTH,
        max_length=ProtocolConstants.ROUTE_B_PASSWORD_LENGTH,
        description="12-byte Route B password",
        repr=False,
    )

    @field_validator("route_b_id", "password", mode="before")
    @classmethod
    def encode_text(cls, v: object) -> object:
        """Accept str values by encoding them as ASCII; reject non-ASCII bytes."""
        if isinstance(v, str):
            try:
                return v.encode("ascii")
            except UnicodeEncodeError as e:
                raise ValueError("Route B credentials must be ASCII") from e
        if isinstance(v, (bytes, bytearray)) and not v.isascii():
            raise ValueError("Route B credentials must be ASCII")
        return v

    @property
    def scan_id(self) -> bytes:
        """Last 8 bytes of the ID, used to filter active scan beacons."""
        return self.route_b_id[-ProtocolConstants.SCAN_ID_SUFFIX_LENGTH :]


class Beacon(BaseModel):
    """
    A smart meter that answered an active scan.

    Scan notification (0x4051) payload layout when a beacon was received:

        result(1) channel(1) count(1) mac(8) pan_id(2) rssi(1)
    """

    model_config = ConfigDict(frozen=True)

    channel: int = Field(ge=0, le=0xFF)
    mac_address: int = Field(ge=0, le=0xFFFF_FFFF_FFFF_FFFF)
    pan_id: int = Field(ge=0, le=0xFFFF)
    rssi: int = Field(ge=-128, le=127)

    PAYLOAD_SIZE: ClassVar[int] = 14

    @classmethod
    def from_scan_notification(cls, payload: bytes) -> Beacon | None:
        """
        Decode an active scan notification.

        Returns:
            The beacon, or None when the notification reports that no
            beacon was received on the scanned channel.

        Raises:
            ProtocolError: If a beacon result is truncated.
        """
        _require_length(payload, 2, "Active scan")
        if payload[0] != ProtocolConstants.SCAN_RESULT_BEACON:
            return None
        _require_length(payload, cls.PAYLOAD_SIZE, "Active scan")
        return cls(
            channel=payload[1],
            mac_address=_UINT64.unpack_from(payload, 3)[0],
            pan_id=_UINT16.unpack_from(payload, 11)[0],
            rssi=_to_int8(payload[13]),
        )

    @property
    def mac_hex(self) -> str:
        """MAC address as lowercase hex without leading zeros."""
        return f"{self.mac_address:x}"

    def __str__(self) -> str:
        return (
            f"Beacon(channel={self.channel}, mac={self.mac_address:016x}, "
            f"pan_id=0x{self.pan_id:04x}, rssi={self.rssi})"
        )


class RouteBStartResult(BaseModel):
    """
    Payload of a successful Route B start response (0x2053).

    Layout: result(1) channel(1) pan_id(2) mac(8) rssi(1)
    """

    model_config = ConfigDict(frozen=True)

    channel: int = Field(ge=0, le=0xFF)
    pan_id: int = Field(ge=0, le=0xFFFF)
    mac_address: int = Field(ge=0, le=0xFFFF_FFFF_FFFF_FFFF)
    rssi: int = Field(ge=-128, le=127)

    @classmethod
    def from_payload(cls, payload: bytes) -> RouteBStartResult:
        """Decode the response payload (result byte included)."""
        _require_length(payload, 13, "Route B start")
        return cls(
            channel=payload[1],
            pan_id=_UINT16.unpack_from(payload, 2)[0],
            mac_address=_UINT64.unpack_from(payload, 4)[0],
            rssi=_to_int8(payload[12]),
        )


class PanaResult(BaseModel):
    """
    PANA authentication result notification (0x6028).

    Layout: result(1) mac(8)
    """

    model_config = ConfigDict(frozen=True)

    result_code: int = Field(ge=0, le=0xFF)
    mac_address: int | None = None

    @classmethod
    def from_payload(cls, payload: bytes) -> PanaResult:
        """Decode the notification payload."""
        _require_length(payload, 1, "PANA result")
        mac = _UINT64.unpack_from(payload, 1)[0] if len(payload) >= 9 else None
        return cls(result_code=payload[0], mac_address=mac)


class TransmitResult(BaseModel):
    """
    Acknowledgment of a data transmission (0x2008).

    Layout: result(1) transmit_result(1) digest(n)
    """

    model_config = ConfigDict(frozen=True)

    result_code: int
    transmit_result: int | None = None
    digest: bytes = b""

    @classmethod
    def from_payload(cls, payload: bytes) -> TransmitResult:
        """Decode the response payload."""
        _require_length(payload, 1, "Transmit data")
        return cls(
            result_code=payload[0],
            transmit_result=payload[1] if len(payload) > 1 else None,
            digest=bytes(payload[2:]),
        )


class TunnelSession(BaseModel):
    """
    Addressing of the active secure session, as seen in the most recent
    inbound UDP notification (0x6018).

    Layout: peer_address(16) peer_port(2) local_port(2) pan_id(2)
            address_type(1) secure(1) rssi(1) length(2) data(length)
    """

    model_config = ConfigDict(frozen=True)

    peer_address: IPv6Address
    peer_port: int = Field(ge=0, le=0xFFFF)
    local_port: int = Field(ge=0, le=0xFFFF)
    pan_id: int = Field(ge=0, le=0xFFFF)
    address_type: int = Field(ge=0, le=0xFF)
    secure: int = Field(ge=0, le=0xFF)
    rssi: int = Field(ge=-128, le=127)
    data_length: int = Field(ge=0, le=0xFFFF)

    HEADER_SIZE: ClassVar[int] = 27

    @classmethod
    def from_payload(cls, payload: bytes) -> tuple[TunnelSession, bytes]:
        """
        Decode an inbound UDP notification.

        Returns:
            Tuple of (session, data) where data is the trailing UDP payload.

        Raises:
            ProtocolError: If the fixed header is truncated.
        """
        _require_length(payload, cls.HEADER_SIZE, "UDP receive")
        session = cls(
            peer_address=IPv6Address(bytes(payload[0:16])),
            peer_port=_UINT16.unpack_from(payload, 16)[0],
            local_port=_UINT16.unpack_from(payload, 18)[0],
            pan_id=_UINT16.unpack_from(payload, 20)[0],
            address_type=payload[22],
            secure=payload[23],
            rssi=_to_int8(payload[24]),
            data_length=_UINT16.unpack_from(payload, 25)[0],
        )
        return session, bytes(payload[cls.HEADER_SIZE :])
