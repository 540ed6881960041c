"""
Exception hierarchy for broute.

All exceptions inherit from BRouteError, providing a clean hierarchy
for error handling. The design follows these principles:

1. Framing errors (checksum, length) are recovered by the frame reader and
   never reach the caller of a handshake
2. Device-reported failures carry the raw datagram for diagnostics
3. Timeouts name the handshake step that was waiting
4. ECHONET Lite format errors are per-frame and do not abort a session
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from enum import Enum

    from broute.protocol.datagram import Datagram


def _step_name(step: Enum | str | None) -> str | None:
    if step is None:
        return None
    return getattr(step, "name", str(step))


class BRouteError(Exception):
    """
    Base exception for all broute errors.

    All library-specific exceptions inherit from this class, allowing
    callers to catch all broute errors with a single except clause.
    """

    pass


class ProtocolError(BRouteError):
    """
    Protocol-level error.

    Raised when the J11 or ECHONET Lite protocol is violated.
    """

    pass


class FramingError(ProtocolError):
    """
    J11 datagram checksum or length mismatch.

    The frame reader treats this as line noise: the candidate datagram is
    discarded and the preamble search resumes.
    """

    def __init__(
        self,
        message: str = "Datagram validation failed",
        *,
        expected: int | None = None,
        received: int | None = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received

    def __str__(self) -> str:
        base = super().__str__()
        if self.expected is not None and self.received is not None:
            return f"{base} (expected 0x{self.expected:04X}, got 0x{self.received:04X})"
        return base


class DeviceRejection(ProtocolError):
    """
    The radio module answered a command with a failure result code.

    Attributes:
        step: Handshake step that issued the command.
        datagram: The raw response, kept for diagnostics.
    """

    def __init__(
        self,
        datagram: Datagram,
        *,
        step: Enum | str | None = None,
        message: str | None = None,
    ) -> None:
        self.datagram = datagram
        self.step = step
        result = datagram.result_code
        detail = message or (
            f"command 0x{datagram.command_code:04X} rejected"
            + (f" with result 0x{result:02X}" if result is not None else " (empty payload)")
        )
        name = _step_name(step)
        super().__init__(f"{name}: {detail}" if name else detail)


class SessionAuthError(ProtocolError):
    """
    PANA authentication did not succeed.

    Raised directly for result codes the module documentation does not
    define; the known failure outcomes use the subclasses below.
    """

    def __init__(self, result_code: int, message: str | None = None) -> None:
        self.result_code = result_code
        super().__init__(message or f"PANA authentication failed: unrecognised result code 0x{result_code:02X}")


class PanaAuthenticationFailed(SessionAuthError):
    """The meter rejected the Route-B credentials."""

    def __init__(self, result_code: int = 2) -> None:
        super().__init__(result_code, "PANA authentication failed: credentials rejected by meter")


class MeterNoResponse(SessionAuthError):
    """The meter never answered the PANA exchange."""

    def __init__(self, result_code: int = 3) -> None:
        super().__init__(result_code, "PANA authentication failed: no response from smart meter")


class FormatError(ProtocolError):
    """
    Malformed ECHONET Lite input.

    Raised per frame; a session keeps running after logging it.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: int | None = None,
        raw_data: bytes | None = None,
    ) -> None:
        super().__init__(message)
        self.offset = offset
        self.raw_data = raw_data

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.offset is not None:
            parts.append(f"offset={self.offset}")
        if self.raw_data:
            display_data = self.raw_data[:20].hex()
            if len(self.raw_data) > 20:
                display_data += "..."
            parts.append(f"data={display_data}")
        return " ".join(parts)


class TimeoutError(BRouteError):  # noqa: A001 - intentionally shadows builtin
    """
    A bounded wait for a response or notification expired.

    Attributes:
        step: Handshake step that was waiting.
        timeout_seconds: The deadline that was exceeded.
    """

    def __init__(
        self,
        message: str = "Communication timeout",
        *,
        step: Enum | str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.timeout_seconds = timeout_seconds

    def __str__(self) -> str:
        base = super().__str__()
        name = _step_name(self.step)
        if name:
            base = f"{name}: {base}"
        if self.timeout_seconds is not None:
            return f"{base} (after {self.timeout_seconds:.1f}s)"
        return base


class TransportError(BRouteError):
    """
    Transport-level error.

    Raised for serial port and other byte-stream I/O failures.
    """

    pass


class SettingsError(BRouteError):
    """The persisted settings file is missing or invalid."""

    pass


# PANA result notification codes
PANA_RESULT_SUCCESS: Final[int] = 0x01
PANA_RESULT_AUTH_FAILED: Final[int] = 0x02
PANA_RESULT_NO_RESPONSE: Final[int] = 0x03


def raise_for_pana_result(result_code: int) -> None:
    """
    Raise the matching SessionAuthError unless the PANA result is success.

    Args:
        result_code: First payload byte of the PANA result notification.

    Raises:
        PanaAuthenticationFailed: Code 0x02.
        MeterNoResponse: Code 0x03.
        SessionAuthError: Any other non-success code.
    """
    if result_code == PANA_RESULT_SUCCESS:
        return
    if result_code == PANA_RESULT_AUTH_FAILED:
        raise PanaAuthenticationFailed(result_code)
    if result_code == PANA_RESULT_NO_RESPONSE:
        raise MeterNoResponse(result_code)
    raise SessionAuthError(result_code)
