"""
Device registry for the fixed animatronics catalog.

The registry is the single owner of device presence state. Every other
component reads it, and mutations go through ``set_connected`` and
``touch_last_seen`` only. The device set is fixed when the registry is
built; nothing is added or removed at runtime.

Usage:
    registry = DeviceRegistry.from_catalog(config.devices)

    # Presence signal
    transition = registry.set_connected("3", True, now_ms())

    # Response signal
    registry.touch_last_seen("3", now_ms())

    # Admission check
    device = registry.get("3")
    if device and device.connected:
        ...
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class DeviceEntry:
    """Catalog device with its mutable presence state"""

    deviceId: str
    name: str
    icon: str
    connected: bool = False
    lastSeen: int | None = None  # epoch ms

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "deviceId": self.deviceId,
            "name": self.name,
            "icon": self.icon,
            "connected": self.connected,
            "lastSeen": self.lastSeen,
        }


@dataclass(frozen=True)
class DeviceTransition:
    """Result of a ``set_connected`` call"""

    device: DeviceEntry
    previous: bool

    @property
    def changed(self) -> bool:
        return self.previous != self.device.connected


class DeviceRegistry:
    """
    Registry of catalog devices and their presence state.

    Invariant: ``connected`` implies ``lastSeen`` is set, and was set at or
    before the most recent transition to connected.

    Operations on unknown device ids are no-ops that log a warning; callers
    are expected to validate existence first.
    """

    def __init__(self, devices: Iterable[DeviceEntry] = ()):
        self._devices: dict[str, DeviceEntry] = {}  # deviceId -> entry, catalog order
        for device in devices:
            if device.deviceId in self._devices:
                raise ValueError(f"Duplicate device id in catalog: {device.deviceId}")
            self._devices[device.deviceId] = device

    @classmethod
    def from_catalog(cls, catalog: Iterable[Any]) -> "DeviceRegistry":
        """
        Build a registry from catalog entries.

        Args:
            catalog: Objects with ``id``, ``name`` and ``icon`` attributes
                (``config.schema.CatalogDevice``)

        Returns:
            Registry with every device disconnected and never seen
        """
        return cls(
            DeviceEntry(deviceId=str(entry.id), name=entry.name, icon=entry.icon)
            for entry in catalog
        )

    def get(self, device_id: str) -> DeviceEntry | None:
        """
        Get device by ID.

        Args:
            device_id: Device ID

        Returns:
            Device entry if found, None otherwise
        """
        return self._devices.get(device_id)

    def contains(self, device_id: str) -> bool:
        return device_id in self._devices

    def all(self) -> list[tuple[str, DeviceEntry]]:
        """List ``(deviceId, entry)`` pairs in catalog order"""
        return list(self._devices.items())

    def set_connected(self, device_id: str, connected: bool, at: int) -> DeviceTransition | None:
        """
        Set device connectivity.

        Connecting always refreshes ``lastSeen`` to ``at``, even when the
        device is already connected. Disconnecting never touches
        ``lastSeen``, so the last time the device was heard from survives.

        Args:
            device_id: Device ID
            connected: New connectivity value
            at: Observation time in epoch ms

        Returns:
            Transition with the previous value, or None for an unknown device
        """
        device = self._devices.get(device_id)
        if device is None:
            logger.warning(f"set_connected on unknown device {device_id!r} ignored")
            return None

        previous = device.connected
        device.connected = connected
        if connected:
            device.lastSeen = at
        return DeviceTransition(device=device, previous=previous)

    def touch_last_seen(self, device_id: str, at: int) -> bool:
        """
        Refresh ``lastSeen`` without altering connectivity.

        Returns:
            True if updated, False if device not found
        """
        device = self._devices.get(device_id)
        if device is None:
            logger.warning(f"touch_last_seen on unknown device {device_id!r} ignored")
            return False
        device.lastSeen = at
        return True

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Mapping of deviceId to device dict, in catalog order"""
        return {device_id: device.to_dict() for device_id, device in self._devices.items()}

    def connected_count(self) -> int:
        return sum(1 for device in self._devices.values() if device.connected)

    def count(self) -> int:
        """Get number of catalog devices"""
        return len(self._devices)


__all__ = [
    "DeviceEntry",
    "DeviceRegistry",
    "DeviceTransition",
    "now_ms",
]
