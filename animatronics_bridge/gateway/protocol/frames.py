"""
Live channel frame models.

Every WebSocket message in either direction is a JSON event frame:
``{"type": "event", "event": <name>, "payload": {...}}``. A missing
``type`` is read as ``"event"``.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ValidationError


class EventFrame(BaseModel):
    """Named event with a payload"""
    type: Literal["event"] = "event"
    event: str
    payload: Optional[Any] = None


def parse_frame(data: Any) -> EventFrame | None:
    """
    Parse a decoded JSON message into an event frame.

    Args:
        data: Decoded JSON value

    Returns:
        Parsed frame, or None if the message is not an event frame
    """
    if not isinstance(data, dict):
        return None
    try:
        return EventFrame(**data)
    except ValidationError:
        return None


__all__ = [
    "EventFrame",
    "parse_frame",
]
