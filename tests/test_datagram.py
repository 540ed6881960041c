"""Tests for J11 datagram encoding and decoding."""

import pytest

from broute.exceptions import FramingError
from broute.protocol.constants import CommandCode, NotificationCode, ResponseCode, UniqueCode
from broute.protocol.datagram import Datagram


class TestDatagramBuild:
    """Tests for building datagrams."""

    def test_request_without_payload(self):
        """Test that a request carries consistent length and checksums."""
        datagram = Datagram.request(CommandCode.HARDWARE_RESET)
        assert datagram.unique_code == UniqueCode.REQUEST
        assert datagram.message_length == 4
        assert datagram.header_checksum == 0x416
        assert datagram.data_checksum == 0
        assert datagram.payload == b""

    def test_request_with_payload(self):
        """Test that message length counts payload plus 4."""
        datagram = Datagram.request(CommandCode.INITIAL_SETUP, bytes([0x05, 0x00, 0x04, 0x00]))
        assert datagram.message_length == 8
        assert datagram.header_checksum == 0x3A0
        assert datagram.data_checksum == 0x0009

    def test_encode_layout(self):
        """Test the big-endian wire layout."""
        encoded = Datagram.request(CommandCode.INITIAL_SETUP, bytes([0x05, 0x00, 0x04, 0x00])).encode()
        assert encoded == bytes.fromhex("d0ea83fc005f000803a0000905000400")

    def test_response_uses_response_preamble(self):
        """Test that response() uses 0xD0F9EE5D."""
        datagram = Datagram.response(NotificationCode.BOOT_COMPLETE)
        assert datagram.encode()[:4] == bytes.fromhex("d0f9ee5d")


class TestDatagramDecode:
    """Tests for decoding datagrams."""

    def test_round_trip(self):
        """Test decode(encode(d)) == d."""
        original = Datagram.response(ResponseCode.ROUTE_B_START, bytes(range(13)))
        encoded = original.encode()
        assert Datagram.decode(encoded[:12], encoded[12:]) == original

    def test_header_checksum_mismatch(self):
        """Test that a corrupted header is rejected."""
        encoded = bytearray(Datagram.response(ResponseCode.INITIAL_SETUP, b"\x01").encode())
        encoded[9] ^= 0x01
        with pytest.raises(FramingError, match="Header checksum"):
            Datagram.decode(encoded[:12], encoded[12:])

    def test_data_checksum_mismatch(self):
        """Test that a corrupted payload is rejected."""
        encoded = bytearray(Datagram.response(ResponseCode.INITIAL_SETUP, b"\x01").encode())
        encoded[12] = 0x02
        with pytest.raises(FramingError, match="Data checksum") as exc_info:
            Datagram.decode(encoded[:12], encoded[12:])
        assert exc_info.value.expected == 0x02
        assert exc_info.value.received == 0x01

    def test_length_mismatch(self):
        """Test that a payload of the wrong size is rejected."""
        encoded = Datagram.response(ResponseCode.INITIAL_SETUP, b"\x01").encode()
        with pytest.raises(FramingError, match="length"):
            Datagram.decode(encoded[:12], encoded[12:] + b"\x00")

    def test_short_header(self):
        """Test that a header of the wrong size is rejected."""
        with pytest.raises(FramingError):
            Datagram.parse_header(b"\xd0\xf9\xee\x5d")

    def test_parse_header_payload_length(self):
        """Test header decoding before the payload is known."""
        encoded = Datagram.response(NotificationCode.UDP_RECEIVE, bytes(30)).encode()
        header = Datagram.parse_header(encoded[:12])
        assert header.command_code == 0x6018
        assert header.payload_length == 30
        assert header.is_valid


class TestDatagramProperties:
    """Tests for datagram helpers."""

    def test_response_classification(self):
        """Test response and notification classification."""
        assert Datagram.response(ResponseCode.PANA_START, b"\x01").is_response
        assert Datagram.response(NotificationCode.PANA_RESULT, b"\x01").is_notification

    def test_result_code(self):
        """Test result byte access."""
        assert Datagram.response(ResponseCode.PANA_START, b"\x01").is_success
        assert Datagram.response(ResponseCode.PANA_START, b"\x02").result_code == 0x02
        assert Datagram.response(ResponseCode.PANA_START).result_code is None
        assert not Datagram.response(ResponseCode.PANA_START).is_success

    def test_repr_names_code(self):
        """Test that repr uses the code name."""
        assert "BOOT_COMPLETE" in repr(Datagram.response(NotificationCode.BOOT_COMPLETE))
        assert "0x7777" in repr(Datagram.response(0x7777))
