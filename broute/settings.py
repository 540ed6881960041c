"""
Persisted pairing settings.

Pairing writes the discovered meter parameters together with the Route B
credentials to a JSON file; the operational run loads them back.

File format (keys are fixed, indent 2):

    {
      "RouteBId": "00000000000000000000000000000000",
      "RouteBPassword": "PASSWORD1234",
      "Channel": 33,
      "MacAddress": "1234567890abcdef",
      "PanId": 4660
    }

Example:
    >>> settings = load_settings("settings.json")
    >>> settings.mac_address_int
    1311768467294899695
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from broute.exceptions import SettingsError
from broute.models.records import Beacon, RouteBCredentials
from broute.protocol.constants import ProtocolConstants

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Route B credentials plus the radio parameters of the paired meter."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    route_b_id: str = Field(
        alias="RouteBId",
        min_length=ProtocolConstants.ROUTE_B_ID_LENGTH,
        max_length=ProtocolConstants.ROUTE_B_ID_LENGTH,
    )
    route_b_password: str = Field(
        alias="RouteBPassword",
        min_length=ProtocolConstants.ROUTE_B_PASSWORD_LENGTH,
        max_length=ProtocolConstants.ROUTE_B_PASSWORD_LENGTH,
        repr=False,
    )
    channel: int = Field(alias="Channel", ge=0, le=0xFF)
    mac_address: str = Field(alias="MacAddress", description="Hex string without prefix")
    pan_id: int = Field(alias="PanId", ge=0, le=0xFFFF)

    @field_validator("route_b_id", "route_b_password")
    @classmethod
    def validate_ascii(cls, v: str) -> str:
        if not v.isascii():
            raise ValueError("Route B credentials must be ASCII")
        return v

    @field_validator("mac_address")
    @classmethod
    def validate_mac_address(cls, v: str) -> str:
        try:
            value = int(v, 16)
        except ValueError as e:
            raise ValueError(f"MacAddress must be hexadecimal, got {v!r}") from e
        if not 0 <= value <= 0xFFFF_FFFF_FFFF_FFFF:
            raise ValueError(f"MacAddress must fit in 64 bits, got {v!r}")
        return v.lower()

    @classmethod
    def from_beacon(cls, credentials: RouteBCredentials, beacon: Beacon) -> Settings:
        """Combine pairing credentials with a discovered beacon."""
        return cls(
            route_b_id=credentials.route_b_id.decode("ascii"),
            route_b_password=credentials.password.decode("ascii"),
            channel=beacon.channel,
            mac_address=beacon.mac_hex,
            pan_id=beacon.pan_id,
        )

    @property
    def mac_address_int(self) -> int:
        return int(self.mac_address, 16)

    @property
    def credentials(self) -> RouteBCredentials:
        return RouteBCredentials(route_b_id=self.route_b_id, password=self.route_b_password)


def load_settings(path: str | Path) -> Settings:
    """
    Read settings from a JSON file.

    Raises:
        SettingsError: If the file cannot be read or does not validate.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SettingsError(f"Cannot read settings file {path}: {e}") from e

    try:
        settings = Settings.model_validate_json(text)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings file {path}: {e}") from e

    logger.debug("Loaded settings from %s", path)
    return settings


def save_settings(path: str | Path, settings: Settings) -> None:
    """
    Write settings as JSON with the file's key names.

    Raises:
        SettingsError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.write_text(settings.model_dump_json(by_alias=True, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise SettingsError(f"Cannot write settings file {path}: {e}") from e
    logger.info("Saved settings to %s", path)
