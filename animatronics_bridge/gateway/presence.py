"""
Presence reconciliation from bus signals.

Turns inbound bus messages into registry mutations and notifications:

- ``animatronics/{id}/status`` "connected"     -> connected, lastSeen = now
- ``animatronics/{id}/status`` "disconnected"  -> disconnected, lastSeen kept
- ``animatronics/{id}/response`` <action>      -> lastSeen = now, device_response

Presence comes only from the device's own explicit messages (including its
last-will "disconnected") plus the liveness monitor's timeout. A response
refreshes ``lastSeen`` but never marks the device connected.

Anything else (wrong topic shape, unknown device, unknown message type,
unrecognized status payload) is a malformed signal: logged and dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal

from ..bus.topics import (
    MSG_RESPONSE,
    MSG_STATUS,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    parse_inbound_topic,
)
from .device_registry import DeviceRegistry, now_ms
from .error_codes import MalformedSignalError
from .fanout import NotificationFanout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceSignal:
    deviceId: str
    kind: Literal["connected", "disconnected"]
    observedAt: int


@dataclass(frozen=True)
class ResponseSignal:
    deviceId: str
    action: str
    observedAt: int


Signal = PresenceSignal | ResponseSignal


class PresenceReconciler:
    """
    Reconcile bus presence/response signals with the device registry.

    Usage:
        reconciler = PresenceReconciler(registry, fanout)
        bridge = MqttBridge(config.mqtt, on_message=reconciler.handle_message)
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        fanout: NotificationFanout,
        clock: Callable[[], int] = now_ms,
    ):
        self._registry = registry
        self._fanout = fanout
        self._clock = clock
        self.dropped = 0  # malformed signals seen

    def parse(self, topic: str, payload: str | bytes, observed_at: int | None = None) -> Signal:
        """
        Decode a bus message into a signal.

        Raises:
            MalformedSignalError: If the message is not a recognized signal
        """
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8", errors="replace")
        payload = payload.strip()

        device_id, message_type = parse_inbound_topic(topic)
        if not self._registry.contains(device_id):
            raise MalformedSignalError(topic, f"Unknown device {device_id!r} on topic {topic!r}")

        at = observed_at if observed_at is not None else self._clock()
        if message_type == MSG_STATUS:
            if payload not in (STATUS_CONNECTED, STATUS_DISCONNECTED):
                raise MalformedSignalError(topic, f"Unrecognized status payload {payload!r} on {topic!r}")
            return PresenceSignal(deviceId=device_id, kind=payload, observedAt=at)
        if message_type == MSG_RESPONSE:
            return ResponseSignal(deviceId=device_id, action=payload, observedAt=at)
        raise MalformedSignalError(topic, f"Unknown message type {message_type!r} on {topic!r}")

    def handle_message(self, topic: str, payload: str | bytes, observed_at: int | None = None) -> bool:
        """
        Apply one inbound bus message.

        Args:
            topic: MQTT topic
            payload: Raw payload
            observed_at: Observation time in epoch ms (defaults to now)

        Returns:
            True if the message was applied, False if it was dropped
        """
        logger.debug(f"Bus message: {topic} = {payload!r}")
        try:
            signal = self.parse(topic, payload, observed_at)
        except MalformedSignalError as e:
            self.dropped += 1
            logger.warning(f"Dropping malformed signal: {e}")
            return False

        if isinstance(signal, PresenceSignal):
            self.apply_presence(signal)
        else:
            self.apply_response(signal)
        return True

    def apply_presence(self, signal: PresenceSignal) -> None:
        connected = signal.kind == STATUS_CONNECTED
        transition = self._registry.set_connected(signal.deviceId, connected, signal.observedAt)
        if transition is None:
            return
        device = transition.device
        logger.info(
            f"Device {device.deviceId} ({device.name}) {signal.kind}"
            + ("" if transition.changed else " (unchanged)")
        )
        # Every genuine signal is broadcast, repeated ones included
        self._fanout.notify_status(device)

    def apply_response(self, signal: ResponseSignal) -> None:
        self._registry.touch_last_seen(signal.deviceId, signal.observedAt)
        logger.info(f"Device {signal.deviceId} responded: {signal.action}")
        self._fanout.notify_response(signal.deviceId, signal.action)


__all__ = [
    "PresenceReconciler",
    "PresenceSignal",
    "ResponseSignal",
    "Signal",
]
