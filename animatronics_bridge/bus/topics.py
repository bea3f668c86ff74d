"""
MQTT topic layout for the animatronics fleet.

Inbound:   animatronics/{deviceId}/status     payload "connected" | "disconnected"
           animatronics/{deviceId}/response   payload <action>
Outbound:  animatronics/{deviceId}/{action}   payload "activate"
           animatronics/{deviceId}/ping       payload "ping"
"""
from __future__ import annotations

from typing import NamedTuple

from ..gateway.error_codes import MalformedSignalError

TOPIC_ROOT = "animatronics"

MSG_STATUS = "status"
MSG_RESPONSE = "response"
INBOUND_MESSAGE_TYPES = frozenset({MSG_STATUS, MSG_RESPONSE})

STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"

ACTION_PING = "ping"
PAYLOAD_ACTIVATE = "activate"
PAYLOAD_PING = "ping"

SUBSCRIPTIONS = (
    f"{TOPIC_ROOT}/+/{MSG_STATUS}",
    f"{TOPIC_ROOT}/+/{MSG_RESPONSE}",
)

_WILDCARDS = ("+", "#")


class InboundTopic(NamedTuple):
    device_id: str
    message_type: str


def parse_inbound_topic(topic: str) -> InboundTopic:
    """
    Split an inbound topic into device id and message type.

    The message type is returned as-is; deciding whether it is one the
    bridge understands is left to the caller.

    Raises:
        MalformedSignalError: If the topic is not ``animatronics/{id}/{type}``
    """
    parts = topic.split("/")
    if len(parts) != 3 or parts[0] != TOPIC_ROOT or not parts[1] or not parts[2]:
        raise MalformedSignalError(topic)
    return InboundTopic(device_id=parts[1], message_type=parts[2])


def is_valid_level(segment: str) -> bool:
    """True if ``segment`` can be used as a single concrete topic level"""
    if not segment or "/" in segment:
        return False
    return not any(w in segment for w in _WILDCARDS)


def command_topic(device_id: str, action: str) -> str:
    return f"{TOPIC_ROOT}/{device_id}/{action}"


def ping_topic(device_id: str) -> str:
    return command_topic(device_id, ACTION_PING)


__all__ = [
    "ACTION_PING",
    "INBOUND_MESSAGE_TYPES",
    "MSG_RESPONSE",
    "MSG_STATUS",
    "PAYLOAD_ACTIVATE",
    "PAYLOAD_PING",
    "STATUS_CONNECTED",
    "STATUS_DISCONNECTED",
    "SUBSCRIPTIONS",
    "TOPIC_ROOT",
    "InboundTopic",
    "command_topic",
    "is_valid_level",
    "parse_inbound_topic",
    "ping_topic",
]
