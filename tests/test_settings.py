"""Tests for the persisted settings file."""

import json

import pytest
from conftest import CHANNEL, METER_MAC, PAN_ID, PASSWORD, ROUTE_B_ID
from pydantic import ValidationError

from broute.exceptions import SettingsError
from broute.models.records import Beacon, RouteBCredentials
from broute.settings import Settings, load_settings, save_settings


class TestSettings:
    """Tests for the Settings model."""

    def test_from_beacon(self):
        """Test combining credentials with a discovered beacon."""
        credentials = RouteBCredentials(route_b_id=ROUTE_B_ID, password=PASSWORD)
        beacon = Beacon(channel=CHANNEL, mac_address=METER_MAC, pan_id=PAN_ID, rssi=-60)

        settings = Settings.from_beacon(credentials, beacon)

        assert settings.route_b_id == ROUTE_B_ID
        assert settings.route_b_password == PASSWORD
        assert settings.mac_address == "1d129012345678"
        assert settings.mac_address_int == METER_MAC
        assert settings.credentials == credentials

    def test_populate_by_alias(self):
        """Test construction from the file's key names."""
        settings = Settings.model_validate(
            {"RouteBId": ROUTE_B_ID, "RouteBPassword": PASSWORD, "Channel": 4, "MacAddress": "ABCDEF", "PanId": 1}
        )
        assert settings.mac_address == "abcdef"

    @pytest.mark.parametrize("mac", ["xyz", "1" * 17])
    def test_invalid_mac(self, settings, mac):
        """Test that the MAC must be a 64-bit hex value."""
        with pytest.raises(ValidationError):
            Settings.model_validate({**settings.model_dump(), "mac_address": mac})

    def test_password_hidden_from_repr(self, settings):
        """Test that the password does not appear in repr."""
        assert PASSWORD not in repr(settings)


class TestSettingsFile:
    """Tests for load_settings and save_settings."""

    def test_round_trip(self, tmp_path, settings):
        """Test that saved settings load back unchanged."""
        path = tmp_path / "settings.json"
        save_settings(path, settings)
        assert load_settings(path) == settings

    def test_file_format(self, tmp_path, settings):
        """Test key names and indentation of the written file."""
        path = tmp_path / "settings.json"
        save_settings(path, settings)

        text = path.read_text()
        assert text.startswith('{\n  "RouteBId": ')
        assert list(json.loads(text)) == ["RouteBId", "RouteBPassword", "Channel", "MacAddress", "PanId"]

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises SettingsError."""
        with pytest.raises(SettingsError):
            load_settings(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        """Test that malformed JSON raises SettingsError."""
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        with pytest.raises(SettingsError):
            load_settings(path)

    def test_invalid_values(self, tmp_path):
        """Test that a wrong-length ID raises SettingsError."""
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps(
                {"RouteBId": "short", "RouteBPassword": PASSWORD, "Channel": 4, "MacAddress": "1", "PanId": 1}
            )
        )
        with pytest.raises(SettingsError):
            load_settings(path)

    def test_unwritable_path(self, tmp_path, settings):
        """Test that a write failure raises SettingsError."""
        with pytest.raises(SettingsError):
            save_settings(tmp_path / "missing" / "settings.json", settings)

    @pytest.mark.parametrize("key", ["RouteBId", "RouteBPassword"])
    def test_non_ascii_credentials(self, tmp_path, key):
        """Test that non-ASCII credentials of the right length raise SettingsError."""
        values = {"RouteBId": ROUTE_B_ID, "RouteBPassword": PASSWORD, "Channel": 4, "MacAddress": "1", "PanId": 1}
        values[key] = "é" * len(values[key])
        path = tmp_path / "settings.json"
        path.write_text(json.dumps(values), encoding="utf-8")
        with pytest.raises(SettingsError):
            load_settings(path)
