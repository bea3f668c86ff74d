"""
Command admission and routing.

A command is admitted when its device exists and is connected, then
published to ``animatronics/{deviceId}/{action}`` with payload
``"activate"``. The ``ping`` action skips the connectivity check and
publishes ``"ping"`` to ``animatronics/{deviceId}/ping``.

Publishing is fire-and-forget: success means the command was handed to the
bus, not that the device executed it. The bus publisher only enqueues, so
the admission read and the publish happen without an await in between.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from ..bus.topics import (
    ACTION_PING,
    INBOUND_MESSAGE_TYPES,
    PAYLOAD_ACTIVATE,
    PAYLOAD_PING,
    command_topic,
    is_valid_level,
    ping_topic,
)
from .device_registry import DeviceRegistry
from .error_codes import DeviceNotFoundError, DeviceUnavailableError, InvalidCommandError

logger = logging.getLogger(__name__)

Origin = Literal["rest", "channel"]


class BusPublisher(Protocol):
    """Outbound side of the messaging bus"""

    def publish(self, topic: str, payload: str) -> None:
        ...


@dataclass(frozen=True)
class CommandRequest:
    deviceId: str
    action: str
    origin: Origin = "rest"


@dataclass(frozen=True)
class CommandResult:
    deviceId: str
    action: str
    topic: str
    message: str

    def to_dict(self) -> dict:
        return {"success": True, "message": self.message}


class CommandRouter:
    """
    Admit or reject commands against current registry state.

    Usage:
        router = CommandRouter(registry, bridge)
        try:
            result = router.route(CommandRequest("3", "wave", origin="rest"))
        except GatewayError as e:
            ...
    """

    def __init__(self, registry: DeviceRegistry, publisher: BusPublisher):
        self._registry = registry
        self._publisher = publisher

    def route(self, request: CommandRequest) -> CommandResult:
        """
        Admit and publish a command.

        Raises:
            DeviceNotFoundError: Unknown device
            InvalidCommandError: Action is not a usable topic level
            DeviceUnavailableError: Device known but not connected
        """
        device = self._registry.get(request.deviceId)
        if device is None:
            logger.warning(f"Command {request.action} rejected ({request.origin}): unknown device {request.deviceId!r}")
            raise DeviceNotFoundError(request.deviceId)

        if request.action == ACTION_PING:
            return self.ping(request.deviceId)

        _check_action(request.action)

        if not device.connected:
            logger.warning(f"Command {request.action} rejected ({request.origin}): {device.name} disconnected")
            raise DeviceUnavailableError(device.deviceId, device.name)

        topic = command_topic(device.deviceId, request.action)
        self._publisher.publish(topic, PAYLOAD_ACTIVATE)
        logger.info(f"Command sent ({request.origin}): {topic}")
        return CommandResult(
            deviceId=device.deviceId,
            action=request.action,
            topic=topic,
            message=f"{request.action} sent to {device.name}",
        )

    def ping(self, device_id: str) -> CommandResult:
        """
        Publish a diagnostic ping regardless of connectivity.

        Raises:
            DeviceNotFoundError: Unknown device
        """
        device = self._registry.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)

        topic = ping_topic(device.deviceId)
        self._publisher.publish(topic, PAYLOAD_PING)
        logger.info(f"Manual ping to device {device.deviceId} ({device.name})")
        return CommandResult(
            deviceId=device.deviceId,
            action=ACTION_PING,
            topic=topic,
            message=f"ping sent to {device.name}",
        )


def _check_action(action: str) -> None:
    if not is_valid_level(action):
        raise InvalidCommandError(f"Invalid action {action!r}")
    # Publishing these would be read back as presence/response signals
    if action in INBOUND_MESSAGE_TYPES:
        raise InvalidCommandError(f"Action {action!r} is reserved")


__all__ = [
    "BusPublisher",
    "CommandRequest",
    "CommandResult",
    "CommandRouter",
    "Origin",
]
