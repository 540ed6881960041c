"""Tests for the operational session."""

import json
from ipaddress import IPv6Address

import pytest
from conftest import METER_ADDRESS, METER_MAC, ModuleSimulator

from broute.echonet.frame import EchonetFrame, Property, ServiceCode
from broute.echonet.properties import InstantaneousPower, decode_property
from broute.exceptions import MeterNoResponse, PanaAuthenticationFailed, SettingsError, TimeoutError
from broute.operation import DEVICE_PROPERTIES, OperationalStateMachine, OperationStep, link_local_address, run
from broute.protocol.constants import CommandCode
from broute.settings import save_settings

FAST = {"timeout": 2, "settle_delay": 0.1, "poll_interval": 0.01}


def power_readings(frames):
    return [
        value.watts
        for frame in frames
        for value in map(decode_property, frame.properties)
        if isinstance(value, InstantaneousPower)
    ]


class TestLinkLocalAddress:
    """Tests for link_local_address."""

    def test_flips_universal_local_bit(self):
        """Test the EUI-64 to link-local derivation."""
        assert link_local_address(METER_MAC) == METER_ADDRESS

    def test_bit_already_set(self):
        """Test that a set universal/local bit is cleared."""
        assert link_local_address(0x0200000000000001) == IPv6Address("fe80::1")

    def test_too_large(self):
        """Test that a MAC wider than 64 bits is rejected."""
        with pytest.raises(ValueError):
            link_local_address(1 << 64)


class TestOperationalStateMachine:
    """Tests for OperationalStateMachine."""

    @pytest.mark.asyncio
    async def test_full_session(self, transport, settings):
        """Test handshake, polling and PANA stop against a simulated meter."""
        simulator = ModuleSimulator(transport)
        received = []
        machine = OperationalStateMachine(transport, settings, consumer=received.append, poll_count=2, **FAST)

        await machine.run()

        assert simulator.requests[:6] == [
            CommandCode.HARDWARE_RESET,
            CommandCode.INITIAL_SETUP,
            CommandCode.SET_PANA_AUTH_INFO,
            CommandCode.ROUTE_B_START,
            CommandCode.UDP_PORT_OPEN,
            CommandCode.PANA_START,
        ]
        assert simulator.requests[-1] == CommandCode.PANA_TERMINATE
        assert machine.step is OperationStep.PANA_STOP
        assert machine.polls == 2
        assert machine.tunnel.address == METER_ADDRESS
        assert not transport.is_open

        requested = [tuple(p.epc for p in frame.properties) for frame in simulator.frames]
        assert requested == [
            *((epc,) for epc in DEVICE_PROPERTIES),
            (0xE5,),
            (0xE2,),
            (0xE0,),
            (0xE7, 0xE8),
            (0xE7, 0xE8),
        ]
        assert [frame.tid for frame in simulator.frames] == list(range(1, 13))
        assert simulator.frames[7] == EchonetFrame.set_request(Property(0xE5, b"\x00"), tid=8)

        # Instance list first, then the answers
        assert received[0].esv == ServiceCode.INF
        assert power_readings(received) == [500, 500]

    @pytest.mark.asyncio
    async def test_uses_settings_channel(self, transport, settings):
        """Test that initial setup uses the paired channel."""
        ModuleSimulator(transport)
        machine = OperationalStateMachine(transport, settings, consumer=lambda frame: None, poll_count=0, **FAST)

        await machine.run()

        setup = transport.written_data[1]
        assert setup[12:] == bytes([0x05, 0x00, settings.channel, 0x00])

    @pytest.mark.asyncio
    async def test_without_history(self, transport, settings):
        """Test that history collection can be skipped."""
        simulator = ModuleSimulator(transport)
        machine = OperationalStateMachine(
            transport, settings, consumer=lambda frame: None, poll_count=0, collect_history=False, **FAST
        )

        await machine.run()

        epcs = [p.epc for frame in simulator.frames for p in frame.properties]
        assert 0xE5 not in epcs
        assert 0xE2 not in epcs
        assert machine.polls == 0

    @pytest.mark.asyncio
    async def test_stop(self, transport, settings):
        """Test that stop() ends unbounded polling with a PANA stop."""
        simulator = ModuleSimulator(transport)
        machine = None

        async def consumer(frame):
            if power_readings([frame]) and machine.polls >= 2:
                await machine.stop()

        machine = OperationalStateMachine(transport, settings, consumer=consumer, poll_count=None, **FAST)

        await machine.run()

        assert machine.polls >= 2
        assert simulator.requests[-1] == CommandCode.PANA_TERMINATE

    @pytest.mark.asyncio
    async def test_async_consumer_failure_is_logged(self, transport, settings, caplog):
        """Test that a failing consumer does not end the session."""
        ModuleSimulator(transport)

        async def consumer(frame):
            raise RuntimeError("boom")

        machine = OperationalStateMachine(transport, settings, consumer=consumer, poll_count=1, **FAST)

        await machine.run()

        assert machine.polls == 1
        assert "Frame consumer failed" in caplog.text

    @pytest.mark.asyncio
    async def test_pana_authentication_failed(self, transport, settings):
        """Test that rejected credentials raise after stopping PANA."""
        simulator = ModuleSimulator(transport, pana_result=0x02)
        machine = OperationalStateMachine(transport, settings, **FAST)

        with pytest.raises(PanaAuthenticationFailed):
            await machine.run()

        assert simulator.requests[-1] == CommandCode.PANA_TERMINATE
        assert machine.tunnel is None
        assert not transport.is_open

    @pytest.mark.asyncio
    async def test_meter_no_response(self, transport, settings):
        """Test the PANA result for a silent meter."""
        ModuleSimulator(transport, pana_result=0x03)
        machine = OperationalStateMachine(transport, settings, **FAST)

        with pytest.raises(MeterNoResponse):
            await machine.run()

    @pytest.mark.asyncio
    async def test_route_b_start_timeout(self, transport, settings):
        """Test that a missing response names the waiting step."""
        simulator = ModuleSimulator(transport, silent=(CommandCode.ROUTE_B_START,))
        machine = OperationalStateMachine(transport, settings, timeout=0.1, settle_delay=0, poll_interval=0)

        with pytest.raises(TimeoutError) as exc_info:
            await machine.run()

        assert exc_info.value.step is OperationStep.ROUTE_B_START
        assert CommandCode.PANA_TERMINATE not in simulator.requests


class TestRun:
    """Tests for the run() entry point."""

    @pytest.mark.asyncio
    async def test_missing_settings(self, tmp_path, transport):
        """Test that a missing settings file raises SettingsError."""
        with pytest.raises(SettingsError):
            await run(tmp_path / "missing.json", transport)
        assert transport.written_data == []

    @pytest.mark.asyncio
    async def test_run_from_file(self, tmp_path, transport, settings):
        """Test loading the settings file and running a session."""
        path = tmp_path / "settings.json"
        save_settings(path, settings)
        simulator = ModuleSimulator(transport)

        await run(path, transport, consumer=lambda frame: None, poll_count=1, **FAST)

        assert simulator.requests[-1] == CommandCode.PANA_TERMINATE

    @pytest.mark.asyncio
    async def test_non_ascii_settings(self, tmp_path, transport):
        """Test that a non-ASCII Route B ID is reported before any I/O."""
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps(
                {"RouteBId": "é" * 32, "RouteBPassword": "PASSWORD1234", "Channel": 4, "MacAddress": "1", "PanId": 1}
            ),
            encoding="utf-8",
        )
        with pytest.raises(SettingsError):
            await run(path, transport)
        assert transport.written_data == []
