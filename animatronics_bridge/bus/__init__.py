"""Messaging bus side of the bridge: MQTT topics and client."""

from .mqtt_bridge import MqttBridge
from .topics import SUBSCRIPTIONS, command_topic, parse_inbound_topic, ping_topic

__all__ = [
    "MqttBridge",
    "SUBSCRIPTIONS",
    "command_topic",
    "parse_inbound_topic",
    "ping_topic",
]
