"""Shared fixtures: a simulated J11 module answering MockTransport writes."""

from ipaddress import IPv6Address

import pytest

from broute.echonet.frame import EchonetFrame, EchonetObject, Property, ServiceCode
from broute.protocol.constants import CommandCode, NotificationCode
from broute.protocol.datagram import Datagram
from broute.settings import Settings
from broute.transport.mock import MockTransport

ROUTE_B_ID = "0123456789ABCDEF0123456789ABCDEF"
PASSWORD = "PASSWORD1234"
METER_MAC = 0x001D129012345678
METER_ADDRESS = IPv6Address("fe80::21d:1290:1234:5678")
PAN_ID = 0x8888
CHANNEL = 0x21

INSTANCE_LIST = bytes.fromhex("108100000ef0010ef0017301d50401028801")

METER_VALUES = {
    0x80: b"\x30",
    0x88: b"\x42",
    0x8A: b"\x00\x00\x16",
    0xD3: b"\x00\x00\x00\x01",
    0xD7: b"\x06",
    0xE0: bytes.fromhex("00002710"),
    0xE1: b"\x01",
    0xE2: b"\x00\x00" + bytes.fromhex("000003e8") * 48,
    0xE7: bytes.fromhex("000001f4"),
    0xE8: bytes.fromhex("00140032"),
    0xEA: bytes.fromhex("07e80a120c1e0000002710"),
}


def ack(command_code: int, result: int = 0x01, extra: bytes = b"") -> bytes:
    return Datagram.response(command_code + 0x2000, bytes([result]) + extra).encode()


def notification(code: int, payload: bytes = b"") -> bytes:
    return Datagram.response(code, payload).encode()


def udp_notification(data: bytes) -> bytes:
    payload = (
        METER_ADDRESS.packed
        + (0x0E1A).to_bytes(2, "big")
        + (0x0E1A).to_bytes(2, "big")
        + PAN_ID.to_bytes(2, "big")
        + bytes([0x00, 0x01, 0xC4])
        + len(data).to_bytes(2, "big")
        + data
    )
    return notification(NotificationCode.UDP_RECEIVE, payload)


def beacon_notification(channel: int = CHANNEL) -> bytes:
    payload = bytes([0x00, channel, 0x01]) + METER_MAC.to_bytes(8, "big") + PAN_ID.to_bytes(2, "big") + b"\xc4"
    return notification(NotificationCode.ACTIVE_SCAN, payload)


class ModuleSimulator:
    """
    Answers every request written to a MockTransport like a J11 module
    paired with a smart meter would.

    Attributes:
        requests: Command codes received, in order.
        frames: ECHONET Lite frames received through transmit-data.
    """

    def __init__(
        self,
        transport: MockTransport,
        *,
        beacon: bool = True,
        pana_result: int = 0x01,
        reject: tuple[int, ...] = (),
        silent: tuple[int, ...] = (),
    ) -> None:
        self.beacon = beacon
        self.pana_result = pana_result
        self.reject = reject
        self.silent = silent
        self.requests: list[int] = []
        self.frames: list[EchonetFrame] = []
        transport.set_response_callback(self)

    def __call__(self, data: bytes) -> bytes | None:
        request = Datagram.decode(data[:12], data[12:])
        code = request.command_code
        self.requests.append(code)

        if code in self.silent:
            return None
        if code == CommandCode.HARDWARE_RESET:
            return notification(NotificationCode.BOOT_COMPLETE)
        if code in self.reject:
            return ack(code, result=0x02)
        if code == CommandCode.ACTIVE_SCAN:
            no_beacon = notification(NotificationCode.ACTIVE_SCAN, bytes([0x01, 0x04]))
            return ack(code) + no_beacon + (beacon_notification() if self.beacon else b"")
        if code == CommandCode.ROUTE_B_START:
            return ack(code, extra=bytes([CHANNEL]) + PAN_ID.to_bytes(2, "big") + METER_MAC.to_bytes(8, "big") + b"\xc4")
        if code == CommandCode.PANA_START:
            result = notification(NotificationCode.PANA_RESULT, bytes([self.pana_result]) + METER_MAC.to_bytes(8, "big"))
            instance_list = udp_notification(INSTANCE_LIST) if self.pana_result == 0x01 else b""
            return ack(code) + result + instance_list
        if code == CommandCode.TRANSMIT_DATA:
            return ack(code, extra=b"\x00") + self._answer(EchonetFrame.decode(request.payload[22:]))
        return ack(code)

    def _answer(self, frame: EchonetFrame) -> bytes:
        self.frames.append(frame)
        if frame.esv == ServiceCode.GET:
            esv = ServiceCode.GET_RES
            properties = tuple(Property(p.epc, METER_VALUES.get(p.epc, b"")) for p in frame.properties)
        elif frame.esv == ServiceCode.SETC:
            esv = ServiceCode.SET_RES
            properties = tuple(Property(p.epc) for p in frame.properties)
        else:
            return b""
        answer = EchonetFrame(
            tid=frame.tid,
            seoj=EchonetObject.SMART_METER,
            deoj=EchonetObject.HOME_CONTROLLER,
            esv=esv,
            properties=properties,
        )
        return udp_notification(answer.encode())


@pytest.fixture
def transport():
    """Create a MockTransport instance."""
    return MockTransport()


@pytest.fixture
def settings():
    """Settings of a paired meter."""
    return Settings(
        route_b_id=ROUTE_B_ID,
        route_b_password=PASSWORD,
        channel=CHANNEL,
        mac_address=f"{METER_MAC:x}",
        pan_id=PAN_ID,
    )
