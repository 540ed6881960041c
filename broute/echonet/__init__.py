"""
ECHONET Lite support.

- frame: EHD/TID/EOJ/ESV frame codec and request builders
- properties: smart meter property decoders
- display: default consumer that logs decoded frames
"""

from broute.echonet.display import log_frame
from broute.echonet.frame import EchonetFrame, EchonetObject, Property, ServiceCode
from broute.echonet.properties import (
    UNKNOWN,
    PropertyDecoderRegistry,
    RawProperty,
    create_default_registry,
    decode_property,
)

__all__ = [
    "EchonetFrame",
    "EchonetObject",
    "Property",
    "ServiceCode",
    "PropertyDecoderRegistry",
    "RawProperty",
    "UNKNOWN",
    "create_default_registry",
    "decode_property",
    "log_frame",
]
