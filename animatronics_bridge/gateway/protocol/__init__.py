"""Live channel protocol: frames and event parameter models."""

from .frames import EventFrame, parse_frame
from .validators import PingDeviceParams, SendCommandParams, validate_event_params

__all__ = [
    "EventFrame",
    "parse_frame",
    "PingDeviceParams",
    "SendCommandParams",
    "validate_event_params",
]
