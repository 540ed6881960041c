"""Tests for data models."""

from ipaddress import IPv6Address

import pytest
from pydantic import ValidationError

from broute.exceptions import ProtocolError
from broute.models.records import (
    Beacon,
    PanaResult,
    RouteBCredentials,
    RouteBStartResult,
    TransmitResult,
    TunnelSession,
)

ROUTE_B_ID = "0123456789ABCDEF0123456789ABCDEF"
PASSWORD = "PASSWORD1234"


class TestRouteBCredentials:
    """Tests for RouteBCredentials model."""

    def test_accepts_text(self):
        """Test that str values are encoded as ASCII."""
        creds = RouteBCredentials(route_b_id=ROUTE_B_ID, password=PASSWORD)
        assert creds.route_b_id == ROUTE_B_ID.encode()
        assert creds.password == PASSWORD.encode()

    def test_accepts_bytes(self):
        """Test that ASCII bytes are stored unchanged."""
        creds = RouteBCredentials(route_b_id=b"0" * 32, password=bytearray(b"P" * 12))
        assert creds.route_b_id == b"0" * 32

    @pytest.mark.parametrize(
        "route_b_id,password",
        [
            (bytes(range(0x80, 0xA0)), PASSWORD.encode()),
            (ROUTE_B_ID.encode(), b"\xff" * 12),
        ],
    )
    def test_non_ascii_bytes_rejected(self, route_b_id, password):
        """Test that non-ASCII bytes are rejected, since settings store text."""
        with pytest.raises(ValidationError):
            RouteBCredentials(route_b_id=route_b_id, password=password)

    def test_scan_id(self):
        """Test that the scan ID is the last 8 bytes of the ID."""
        creds = RouteBCredentials(route_b_id=ROUTE_B_ID, password=PASSWORD)
        assert creds.scan_id == b"89ABCDEF"

    @pytest.mark.parametrize("route_b_id", ["", "0" * 31, "0" * 33])
    def test_id_length(self, route_b_id):
        """Test that the ID must be exactly 32 bytes."""
        with pytest.raises(ValidationError):
            RouteBCredentials(route_b_id=route_b_id, password=PASSWORD)

    @pytest.mark.parametrize("password", ["", "P" * 11, "P" * 13])
    def test_password_length(self, password):
        """Test that the password must be exactly 12 bytes."""
        with pytest.raises(ValidationError):
            RouteBCredentials(route_b_id=ROUTE_B_ID, password=password)

    def test_non_ascii_rejected(self):
        """Test that non-ASCII text is rejected."""
        with pytest.raises(ValidationError):
            RouteBCredentials(route_b_id="é" * 32, password=PASSWORD)

    def test_password_hidden_from_repr(self):
        """Test that the password does not appear in repr."""
        creds = RouteBCredentials(route_b_id=ROUTE_B_ID, password=PASSWORD)
        assert PASSWORD not in repr(creds)

    def test_immutable(self):
        """Test that credentials are frozen."""
        creds = RouteBCredentials(route_b_id=ROUTE_B_ID, password=PASSWORD)
        with pytest.raises(ValidationError):
            creds.password = b"x" * 12


class TestBeacon:
    """Tests for Beacon model."""

    PAYLOAD = bytes.fromhex("00" "21" "01" "001d129012345678" "8888" "c4")

    def test_from_scan_notification(self):
        """Test decoding a beacon result."""
        beacon = Beacon.from_scan_notification(self.PAYLOAD)
        assert beacon.channel == 0x21
        assert beacon.mac_address == 0x001D129012345678
        assert beacon.pan_id == 0x8888
        assert beacon.rssi == -60

    def test_mac_hex(self):
        """Test hex rendering without leading zeros."""
        beacon = Beacon.from_scan_notification(self.PAYLOAD)
        assert beacon.mac_hex == "1d129012345678"

    def test_no_beacon(self):
        """Test that a no-beacon result decodes to None."""
        assert Beacon.from_scan_notification(bytes([0x01, 0x05])) is None

    def test_truncated_beacon(self):
        """Test that a truncated beacon result raises."""
        with pytest.raises(ProtocolError):
            Beacon.from_scan_notification(self.PAYLOAD[:10])

    def test_empty_payload(self):
        """Test that an empty payload raises."""
        with pytest.raises(ProtocolError):
            Beacon.from_scan_notification(b"")

    def test_str(self):
        """Test string representation."""
        beacon = Beacon.from_scan_notification(self.PAYLOAD)
        assert str(beacon) == "Beacon(channel=33, mac=001d129012345678, pan_id=0x8888, rssi=-60)"


class TestRouteBStartResult:
    """Tests for RouteBStartResult model."""

    def test_from_payload(self):
        """Test decoding a Route B start response."""
        payload = bytes.fromhex("01" "21" "8888" "001d129012345678" "10")
        result = RouteBStartResult.from_payload(payload)
        assert result.channel == 0x21
        assert result.pan_id == 0x8888
        assert result.mac_address == 0x001D129012345678
        assert result.rssi == 16

    def test_truncated(self):
        """Test that a truncated payload raises."""
        with pytest.raises(ProtocolError):
            RouteBStartResult.from_payload(b"\x01\x21")


class TestPanaResult:
    """Tests for PanaResult model."""

    def test_with_mac(self):
        """Test decoding a result carrying the peer MAC."""
        result = PanaResult.from_payload(bytes.fromhex("01001d129012345678"))
        assert result.result_code == 0x01
        assert result.mac_address == 0x001D129012345678

    def test_result_only(self):
        """Test decoding a bare result byte."""
        result = PanaResult.from_payload(b"\x02")
        assert result.result_code == 0x02
        assert result.mac_address is None

    def test_empty(self):
        """Test that an empty payload raises."""
        with pytest.raises(ProtocolError):
            PanaResult.from_payload(b"")


class TestTransmitResult:
    """Tests for TransmitResult model."""

    def test_success(self):
        """Test decoding a successful acknowledgment."""
        result = TransmitResult.from_payload(b"\x01\x00")
        assert result.result_code == 0x01
        assert result.transmit_result == 0x00
        assert result.digest == b""

    def test_failure_with_digest(self):
        """Test that the trailing bytes are kept as digest."""
        result = TransmitResult.from_payload(b"\x05\x01\xaa\xbb")
        assert result.result_code == 0x05
        assert result.digest == b"\xaa\xbb"

    def test_result_only(self):
        """Test a payload with only the result byte."""
        assert TransmitResult.from_payload(b"\x01").transmit_result is None


class TestTunnelSession:
    """Tests for TunnelSession model."""

    @staticmethod
    def build_payload(data: bytes, declared_length: int | None = None) -> bytes:
        length = len(data) if declared_length is None else declared_length
        return (
            IPv6Address("fe80::21d:1290:1234:5678").packed
            + (0x0E1A).to_bytes(2, "big")
            + (0x0E1A).to_bytes(2, "big")
            + (0x8888).to_bytes(2, "big")
            + bytes([0x00, 0x01, 0xC4])
            + length.to_bytes(2, "big")
            + data
        )

    def test_from_payload(self):
        """Test decoding the session header and data."""
        session, data = TunnelSession.from_payload(self.build_payload(b"\x10\x81"))
        assert session.peer_address == IPv6Address("fe80::21d:1290:1234:5678")
        assert session.peer_port == 3610
        assert session.local_port == 3610
        assert session.pan_id == 0x8888
        assert session.secure == 1
        assert session.rssi == -60
        assert session.data_length == 2
        assert data == b"\x10\x81"

    def test_header_size(self):
        """Test the fixed header size."""
        assert len(self.build_payload(b"")) == TunnelSession.HEADER_SIZE

    def test_truncated(self):
        """Test that a truncated header raises."""
        with pytest.raises(ProtocolError):
            TunnelSession.from_payload(self.build_payload(b"")[:20])
