"""
Semantic decoders for smart meter properties.

Each supported EPC of the low-voltage smart electric energy meter class
(0x0288) has a decoder that turns the raw EDT into an immutable value
object. Decoders are looked up in a registry keyed by EPC:

    PropertyDecoderRegistry
        ├── 0x80 operation status
        ├── 0x88 fault status
        ├── 0x8A manufacturer code
        ├── 0xD3 coefficient
        ├── 0xD7 significant digits
        ├── 0xE0 cumulative energy
        ├── 0xE1 unit multiplier
        ├── 0xE2 cumulative energy history
        ├── 0xE7 instantaneous power
        ├── 0xE8 instantaneous current
        └── 0xEA timestamped cumulative energy

Unknown codes, and known codes whose EDT is too short for the decoder,
come back as RawProperty instead of raising.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Final, Literal, Union

if TYPE_CHECKING:
    from broute.echonet.frame import Property


_UINT16 = struct.Struct(">H")
_INT16 = struct.Struct(">h")
_UINT32 = struct.Struct(">I")
_INT32 = struct.Struct(">i")
_TIMESTAMPED = struct.Struct(">HBBBBBI")


class _Unknown(Enum):
    UNKNOWN = "unknown"

    def __repr__(self) -> str:
        return "UNKNOWN"


UNKNOWN: Final = _Unknown.UNKNOWN
"""Multiplier of a unit code missing from the lookup table."""

UNIT_MULTIPLIERS: Final[dict[int, Decimal]] = {
    0x00: Decimal("1"),
    0x01: Decimal("0.1"),
    0x02: Decimal("0.01"),
    0x03: Decimal("0.001"),
    0x04: Decimal("0.0001"),
    0x0A: Decimal("10"),
    0x0B: Decimal("100"),
    0x0C: Decimal("1000"),
    0x0D: Decimal("10000"),
}
"""Unit code (EPC 0xE1) to kWh multiplier."""

HISTORY_SLOTS: Final[int] = 48
"""Half-hour readings per day of cumulative history."""

HISTORY_NOT_AVAILABLE: Final[int] = 0xFFFFFFFE
"""Cumulative history value of a slot without a reading."""

SINGLE_PHASE_TWO_WIRE_MARKER: Final[int] = 0x7FFE
"""T-phase current of a single-phase two-wire meter."""


@dataclass(frozen=True)
class RawProperty:
    """
    A property without a decoder, or too short for its decoder.

    Attributes:
        epc: Property code.
        pdc: Property data count.
        edt: Property data.
    """

    epc: int
    pdc: int
    edt: bytes

    def __str__(self) -> str:
        return f"EPC 0x{self.epc:02X} PDC {self.pdc} EDT {self.edt.hex()}"


@dataclass(frozen=True)
class OperationStatus:
    """EPC 0x80. 0x30 means on, 0x31 means off."""

    code: int

    @property
    def is_on(self) -> bool | None:
        if self.code == 0x30:
            return True
        if self.code == 0x31:
            return False
        return None

    def __str__(self) -> str:
        state = {True: "on", False: "off"}.get(self.is_on, f"unknown (0x{self.code:02X})")
        return f"Operation status: {state}"


@dataclass(frozen=True)
class FaultStatus:
    """EPC 0x88. 0x41 means a fault occurred, 0x42 means none."""

    code: int

    @property
    def has_fault(self) -> bool | None:
        if self.code == 0x41:
            return True
        if self.code == 0x42:
            return False
        return None

    def __str__(self) -> str:
        state = {True: "fault", False: "no fault"}.get(self.has_fault, f"unknown (0x{self.code:02X})")
        return f"Fault status: {state}"


@dataclass(frozen=True)
class ManufacturerCode:
    """EPC 0x8A. Three-byte code assigned by the ECHONET Consortium."""

    code: bytes

    def __str__(self) -> str:
        return f"Manufacturer code: {self.code.hex()}"


@dataclass(frozen=True)
class Coefficient:
    """EPC 0xD3. Multiplier applied to cumulative readings."""

    value: int

    def __str__(self) -> str:
        return f"Coefficient: {self.value}"


@dataclass(frozen=True)
class SignificantDigits:
    """EPC 0xD7. Number of effective digits of cumulative readings."""

    digits: int

    def __str__(self) -> str:
        return f"Significant digits: {self.digits}"


@dataclass(frozen=True)
class CumulativeEnergy:
    """EPC 0xE0. Cumulative energy, normal direction, in meter units."""

    value: int

    def __str__(self) -> str:
        return f"Cumulative energy: {self.value}"


@dataclass(frozen=True)
class UnitMultiplier:
    """
    EPC 0xE1. Unit of cumulative readings as a kWh multiplier.

    Example:
        >>> UnitMultiplier.from_code(0x01).multiplier
        Decimal('0.1')
        >>> UnitMultiplier.from_code(0x05).multiplier
        UNKNOWN
    """

    code: int
    multiplier: Union[Decimal, Literal[_Unknown.UNKNOWN]]

    @classmethod
    def from_code(cls, code: int) -> UnitMultiplier:
        return cls(code=code, multiplier=UNIT_MULTIPLIERS.get(code, UNKNOWN))

    @property
    def is_known(self) -> bool:
        return self.multiplier is not UNKNOWN

    def to_kwh(self, value: int) -> Decimal | None:
        """Scale a cumulative reading to kWh, None if the unit is unknown."""
        if self.multiplier is UNKNOWN:
            return None
        return value * self.multiplier

    def __str__(self) -> str:
        if self.multiplier is UNKNOWN:
            return f"Unit: unknown (0x{self.code:02X})"
        return f"Unit: {self.multiplier} kWh"


@dataclass(frozen=True)
class CumulativeHistory:
    """
    EPC 0xE2. Half-hourly cumulative readings of one day.

    Attributes:
        days_ago: Day the history belongs to, 0 for today.
        values: 48 readings, None for slots without a reading.
    """

    days_ago: int
    values: tuple[int | None, ...]

    def __str__(self) -> str:
        readings = ",".join("N/A" if v is None else str(v) for v in self.values)
        return f"Cumulative history ({self.days_ago} days ago): [{readings}]"


@dataclass(frozen=True)
class InstantaneousPower:
    """EPC 0xE7. Instantaneous power in watts; negative means reverse flow."""

    watts: int

    def __str__(self) -> str:
        return f"Instantaneous power: {self.watts} W"


@dataclass(frozen=True)
class InstantaneousCurrent:
    """
    EPC 0xE8. Instantaneous R and T phase currents in amperes.

    A single-phase two-wire meter reports only the R phase.
    """

    r_phase: float
    t_phase: float | None

    @property
    def single_phase_two_wire(self) -> bool:
        return self.t_phase is None

    def __str__(self) -> str:
        if self.t_phase is None:
            return f"Instantaneous current (1P2W): {self.r_phase:.1f} A"
        return f"Instantaneous current (1P3W): R {self.r_phase:.1f} A, T {self.t_phase:.1f} A"


@dataclass(frozen=True)
class TimestampedCumulativeEnergy:
    """EPC 0xEA. Cumulative energy at the most recent half-hour boundary."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    value: int

    @property
    def timestamp(self) -> datetime | None:
        """Reading time, None if the meter sent an invalid date."""
        try:
            return datetime(self.year, self.month, self.day, self.hour, self.minute, self.second)
        except ValueError:
            return None

    def __str__(self) -> str:
        return (
            f"Timestamped cumulative energy: {self.year:04d}/{self.month:02d}/{self.day:02d} "
            f"{self.hour:02d}:{self.minute:02d}:{self.second:02d} {self.value}"
        )


PropertyValue = Union[
    RawProperty,
    OperationStatus,
    FaultStatus,
    ManufacturerCode,
    Coefficient,
    SignificantDigits,
    CumulativeEnergy,
    UnitMultiplier,
    CumulativeHistory,
    InstantaneousPower,
    InstantaneousCurrent,
    TimestampedCumulativeEnergy,
]

PropertyDecoder = Callable[[bytes], Any]


def decode_operation_status(edt: bytes) -> OperationStatus:
    return OperationStatus(edt[0])


def decode_fault_status(edt: bytes) -> FaultStatus:
    return FaultStatus(edt[0])


def decode_manufacturer_code(edt: bytes) -> ManufacturerCode:
    return ManufacturerCode(bytes(edt[:3]))


def decode_coefficient(edt: bytes) -> Coefficient:
    # 4-byte form per the ECHONET Lite appendix, 1-byte form seen on some meters
    if len(edt) >= 4:
        return Coefficient(_UINT32.unpack_from(edt)[0])
    return Coefficient(edt[0])


def decode_significant_digits(edt: bytes) -> SignificantDigits:
    return SignificantDigits(edt[0])


def decode_cumulative_energy(edt: bytes) -> CumulativeEnergy:
    return CumulativeEnergy(_UINT32.unpack_from(edt)[0])


def decode_unit_multiplier(edt: bytes) -> UnitMultiplier:
    return UnitMultiplier.from_code(edt[0])


def decode_cumulative_history(edt: bytes) -> CumulativeHistory:
    days_ago = _UINT16.unpack_from(edt)[0]
    values = tuple(
        None if v == HISTORY_NOT_AVAILABLE else v
        for (v,) in (_UINT32.unpack_from(edt, 2 + 4 * i) for i in range(HISTORY_SLOTS))
    )
    return CumulativeHistory(days_ago=days_ago, values=values)


def decode_instantaneous_power(edt: bytes) -> InstantaneousPower:
    return InstantaneousPower(_INT32.unpack_from(edt)[0])


def decode_instantaneous_current(edt: bytes) -> InstantaneousCurrent:
    r_raw = _INT16.unpack_from(edt, 0)[0]
    t_raw = _UINT16.unpack_from(edt, 2)[0]
    if t_raw == SINGLE_PHASE_TWO_WIRE_MARKER:
        return InstantaneousCurrent(r_phase=r_raw / 10, t_phase=None)
    return InstantaneousCurrent(r_phase=r_raw / 10, t_phase=_INT16.unpack_from(edt, 2)[0] / 10)


def decode_timestamped_cumulative_energy(edt: bytes) -> TimestampedCumulativeEnergy:
    return TimestampedCumulativeEnergy(*_TIMESTAMPED.unpack_from(edt))


class PropertyDecoderRegistry:
    """
    Registry of EPC decoders.

    Each entry pairs a decoder with the minimum EDT length it needs; a
    shorter EDT is surfaced as RawProperty.

    Example:
        >>> registry = PropertyDecoderRegistry()
        >>> registry.register(0xE7, decode_instantaneous_power, min_length=4)
        >>> registry.decode(Property(0xE7, bytes.fromhex("000001f4")))
        InstantaneousPower(watts=500)
    """

    def __init__(self) -> None:
        self._decoders: dict[int, tuple[PropertyDecoder, int]] = {}

    def register(self, epc: int, decoder: PropertyDecoder, *, min_length: int = 1) -> None:
        """
        Register a decoder for a property code.

        Note:
            Replaces any existing decoder for the same code.
        """
        self._decoders[epc] = (decoder, min_length)

    def unregister(self, epc: int) -> bool:
        """Remove a decoder, returning True if one was registered."""
        return self._decoders.pop(epc, None) is not None

    def has_decoder(self, epc: int) -> bool:
        return epc in self._decoders

    @property
    def registered_codes(self) -> list[int]:
        return sorted(self._decoders)

    def clear(self) -> None:
        """Remove all registered decoders."""
        self._decoders.clear()

    def __repr__(self) -> str:
        return f"PropertyDecoderRegistry(codes={len(self._decoders)})"

    def decode(self, prop: Property) -> PropertyValue:
        """Decode one property, falling back to RawProperty."""
        entry = self._decoders.get(prop.epc)
        if entry is None:
            return RawProperty(prop.epc, prop.pdc, prop.edt)
        decoder, min_length = entry
        if len(prop.edt) < min_length:
            return RawProperty(prop.epc, prop.pdc, prop.edt)
        return decoder(prop.edt)


def create_default_registry() -> PropertyDecoderRegistry:
    """Create a registry holding every smart meter decoder."""
    registry = PropertyDecoderRegistry()
    registry.register(0x80, decode_operation_status)
    registry.register(0x88, decode_fault_status)
    registry.register(0x8A, decode_manufacturer_code, min_length=3)
    registry.register(0xD3, decode_coefficient)
    registry.register(0xD7, decode_significant_digits)
    registry.register(0xE0, decode_cumulative_energy, min_length=4)
    registry.register(0xE1, decode_unit_multiplier)
    registry.register(0xE2, decode_cumulative_history, min_length=2 + 4 * HISTORY_SLOTS)
    registry.register(0xE7, decode_instantaneous_power, min_length=4)
    registry.register(0xE8, decode_instantaneous_current, min_length=4)
    registry.register(0xEA, decode_timestamped_cumulative_energy, min_length=_TIMESTAMPED.size)
    return registry


DEFAULT_REGISTRY = create_default_registry()
"""Registry used by decode_property()."""


def decode_property(prop: Property) -> PropertyValue:
    """
    Decode a property with the default registry.

    Example:
        >>> decode_property(Property(0xE0, bytes([0x00, 0x00, 0x27, 0x10])))
        CumulativeEnergy(value=10000)
    """
    return DEFAULT_REGISTRY.decode(prop)
