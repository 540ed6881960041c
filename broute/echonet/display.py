"""
Default frame consumer: logs decoded ECHONET Lite frames.

The operational loop hands every inbound frame to a consumer callable;
log_frame() is the one used when the caller supplies none.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from broute.echonet.frame import ServiceCode
from broute.echonet.properties import RawProperty, decode_property

if TYPE_CHECKING:
    from broute.echonet.frame import EchonetFrame

logger = logging.getLogger(__name__)

SERVICE_DESCRIPTIONS: dict[int, str] = {
    ServiceCode.GET_SNA: "Property read not possible",
    ServiceCode.INF_SNA: "Property notification not possible",
    ServiceCode.SET_RES: "Property write response",
    ServiceCode.GET_RES: "Property read response",
    ServiceCode.INF: "Property notification",
}


def log_frame(frame: EchonetFrame, log: logging.Logger | None = None) -> None:
    """
    Log a frame and each of its decoded properties.

    Frames with an unexpected ESV and properties without a decoder are
    logged at debug level only.
    """
    log = log or logger
    description = SERVICE_DESCRIPTIONS.get(frame.esv)
    if description is None:
        log.debug("Unexpected ESV 0x%02X: %r", frame.esv, frame)
    else:
        log.info("%s (%d properties)", description, frame.opc)

    for prop in frame.properties:
        value = decode_property(prop)
        if isinstance(value, RawProperty):
            log.debug("%s", value)
        else:
            log.info("%s", value)
