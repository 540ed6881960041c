"""
ECHONET Lite frame encoding and decoding.

Wire format (format 1, all multi-byte fields big-endian):

    EHD(2) TID(2) SEOJ(3) DEOJ(3) ESV(1) OPC(1) { EPC(1) PDC(1) EDT(PDC) } x OPC

- EHD is fixed at 0x1081
- OPC counts the property entries that follow
- each property's PDC gives the number of EDT bytes
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Final

from broute.exceptions import FormatError

_FIXED_HEADER = struct.Struct(">HH3s3sBB")

ECHONET_LITE_EHD: Final[int] = 0x1081
"""EHD of an ECHONET Lite format 1 frame."""

HEADER_SIZE: Final[int] = _FIXED_HEADER.size


class ServiceCode(IntEnum):
    """ECHONET Lite service codes (ESV)."""

    SETI_SNA = 0x50
    """Set (no response required) not possible."""

    SETC_SNA = 0x51
    """Set (response required) not possible."""

    GET_SNA = 0x52
    """Property value read not possible."""

    INF_SNA = 0x53
    """Property value notification not possible."""

    SETI = 0x60
    """Property value write request (no response required)."""

    SETC = 0x61
    """Property value write request (response required)."""

    GET = 0x62
    """Property value read request."""

    INF_REQ = 0x63
    """Property value notification request."""

    SET_RES = 0x71
    """Property value write response."""

    GET_RES = 0x72
    """Property value read response."""

    INF = 0x73
    """Property value notification."""

    INFC = 0x74
    """Property value notification (response required)."""

    INFC_RES = 0x7A
    """Property value notification response."""


class EchonetObject:
    """ECHONET Lite object identifiers (EOJ) used by this client."""

    HOME_CONTROLLER: Final[bytes] = bytes([0x05, 0xFF, 0x01])
    """Controller class group, home controller class, instance 1."""

    SMART_METER: Final[bytes] = bytes([0x02, 0x88, 0x01])
    """Low-voltage smart electric energy meter, instance 1."""

    NODE_PROFILE: Final[bytes] = bytes([0x0E, 0xF0, 0x01])
    """Node profile object, instance 1."""


@dataclass(frozen=True)
class Property:
    """
    One EDATA entry.

    Attributes:
        epc: Property code.
        edt: Property data; PDC is its length.
    """

    epc: int
    edt: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.epc <= 0xFF:
            raise ValueError(f"EPC must be 0-255, got {self.epc}")
        if len(self.edt) > 0xFF:
            raise ValueError(f"EDT too long for PDC: {len(self.edt)} bytes")

    @property
    def pdc(self) -> int:
        """Property data count."""
        return len(self.edt)

    def encode(self) -> bytes:
        """Serialize as EPC PDC EDT."""
        return bytes([self.epc, self.pdc]) + self.edt

    def __repr__(self) -> str:
        return f"Property(0x{self.epc:02X}, edt={self.edt.hex()})"


@dataclass(frozen=True)
class EchonetFrame:
    """
    An ECHONET Lite format 1 frame.

    Example:
        >>> frame = EchonetFrame.get_request(0xE7, 0xE8)
        >>> frame.encode().hex()
        '1081000105ff010288016202e700e800'
    """

    tid: int
    seoj: bytes
    deoj: bytes
    esv: int
    properties: tuple[Property, ...] = field(default_factory=tuple)
    ehd: int = ECHONET_LITE_EHD

    def __post_init__(self) -> None:
        if len(self.seoj) != 3 or len(self.deoj) != 3:
            raise ValueError("SEOJ and DEOJ must be 3 bytes")
        if len(self.properties) > 0xFF:
            raise ValueError(f"Too many properties for OPC: {len(self.properties)}")
        # Accept any iterable of properties, store a tuple
        object.__setattr__(self, "properties", tuple(self.properties))

    @property
    def opc(self) -> int:
        """Number of properties."""
        return len(self.properties)

    @property
    def service(self) -> ServiceCode | int:
        """ESV as ServiceCode if recognised, else raw int."""
        try:
            return ServiceCode(self.esv)
        except ValueError:
            return self.esv

    def encode(self) -> bytes:
        """Serialize to wire format."""
        header = _FIXED_HEADER.pack(self.ehd, self.tid, bytes(self.seoj), bytes(self.deoj), self.esv, self.opc)
        return header + b"".join(prop.encode() for prop in self.properties)

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> EchonetFrame:
        """
        Parse an ECHONET Lite frame.

        Bytes after the last announced property are ignored.

        Raises:
            FormatError: If the input is 12 bytes or shorter, EHD is not
                0x1081, or a property overruns the buffer.
        """
        data = bytes(data)
        if len(data) <= HEADER_SIZE:
            raise FormatError(f"Bad length ({len(data)})", raw_data=data)

        ehd, tid, seoj, deoj, esv, opc = _FIXED_HEADER.unpack_from(data)
        if ehd != ECHONET_LITE_EHD:
            raise FormatError(f"EHD 0x{ehd:04X} is not an ECHONET Lite frame", offset=0, raw_data=data)

        properties = []
        offset = HEADER_SIZE
        for _ in range(opc):
            if offset + 2 > len(data):
                raise FormatError("Property header overruns frame", offset=offset, raw_data=data)
            epc, pdc = data[offset], data[offset + 1]
            end = offset + 2 + pdc
            if end > len(data):
                raise FormatError(
                    f"PDC {pdc} of EPC 0x{epc:02X} overruns frame",
                    offset=offset,
                    raw_data=data,
                )
            properties.append(Property(epc, data[offset + 2 : end]))
            offset = end

        return cls(tid=tid, seoj=seoj, deoj=deoj, esv=esv, properties=tuple(properties), ehd=ehd)

    @classmethod
    def get_request(
        cls,
        *epcs: int,
        tid: int = 0x0001,
        seoj: bytes = EchonetObject.HOME_CONTROLLER,
        deoj: bytes = EchonetObject.SMART_METER,
    ) -> EchonetFrame:
        """Build a Get request for one or more property codes."""
        return cls(
            tid=tid,
            seoj=seoj,
            deoj=deoj,
            esv=ServiceCode.GET,
            properties=tuple(Property(epc) for epc in epcs),
        )

    @classmethod
    def set_request(
        cls,
        *properties: Property,
        tid: int = 0x0001,
        seoj: bytes = EchonetObject.HOME_CONTROLLER,
        deoj: bytes = EchonetObject.SMART_METER,
    ) -> EchonetFrame:
        """Build a SetC (response required) request."""
        return cls(tid=tid, seoj=seoj, deoj=deoj, esv=ServiceCode.SETC, properties=tuple(properties))

    def __repr__(self) -> str:
        service = self.service
        name = service.name if isinstance(service, ServiceCode) else f"0x{self.esv:02X}"
        return (
            f"EchonetFrame({name}, tid=0x{self.tid:04X}, seoj={self.seoj.hex()}, "
            f"deoj={self.deoj.hex()}, properties={list(self.properties)!r})"
        )
