"""
Data models for J11 protocol records.

This module contains Pydantic models representing the values carried in
J11 payloads:

- Route B credentials
- Active scan beacons
- Route B start, PANA and transmit results
- Secure session (tunnel) addressing
"""

from broute.models.records import (
    Beacon,
    PanaResult,
    RouteBCredentials,
    RouteBStartResult,
    TransmitResult,
    TunnelSession,
)

__all__ = [
    "Beacon",
    "PanaResult",
    "RouteBCredentials",
    "RouteBStartResult",
    "TransmitResult",
    "TunnelSession",
]
