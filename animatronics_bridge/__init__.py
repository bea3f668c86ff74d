"""Animatronics bridge: device presence and command routing between an MQTT bus and live clients."""

__version__ = "0.1.0"
