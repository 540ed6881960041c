"""
broute - Route B smart meter client for BP35Cx-J11 Wi-SUN modules.

This library drives a J11 radio module over its serial protocol to pair
with a Japanese low-voltage smart meter, authenticate with PANA and read
ECHONET Lite properties such as instantaneous power and cumulative energy.

Example:
    >>> from broute import RouteBCredentials, pair, run
    >>> from broute.transport import AsyncSerialTransport
    >>>
    >>> async def main():
    ...     credentials = RouteBCredentials(route_b_id=rbid, password=password)
    ...     await pair("settings.json", AsyncSerialTransport("/dev/ttyUSB0"), credentials)
    ...     await run("settings.json", AsyncSerialTransport("/dev/ttyUSB0"))
"""

from broute.echonet import EchonetFrame, Property, decode_property, log_frame
from broute.exceptions import (
    BRouteError,
    DeviceRejection,
    FormatError,
    FramingError,
    MeterNoResponse,
    PanaAuthenticationFailed,
    ProtocolError,
    SessionAuthError,
    SettingsError,
    TimeoutError,
    TransportError,
)
from broute.models.records import Beacon, RouteBCredentials
from broute.operation import OperationalStateMachine, OperationStep, link_local_address, run
from broute.pairing import PairingStateMachine, PairingStep, pair
from broute.settings import Settings, load_settings, save_settings
from broute.transport import AbstractTransport, AsyncSerialTransport

__version__ = "0.1.0"
__all__ = [
    # Entry points
    "pair",
    "run",
    # State machines
    "PairingStateMachine",
    "PairingStep",
    "OperationalStateMachine",
    "OperationStep",
    "link_local_address",
    # Models
    "Beacon",
    "RouteBCredentials",
    "Settings",
    "load_settings",
    "save_settings",
    # ECHONET Lite
    "EchonetFrame",
    "Property",
    "decode_property",
    "log_frame",
    # Exceptions
    "BRouteError",
    "ProtocolError",
    "FramingError",
    "DeviceRejection",
    "SessionAuthError",
    "PanaAuthenticationFailed",
    "MeterNoResponse",
    "FormatError",
    "TimeoutError",
    "TransportError",
    "SettingsError",
    # Transport
    "AbstractTransport",
    "AsyncSerialTransport",
    # Version
    "__version__",
]
