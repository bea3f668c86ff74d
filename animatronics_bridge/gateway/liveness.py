"""
Liveness monitor for connected devices.

Periodically demotes devices that have gone silent. A connected device
whose ``lastSeen`` is older than the stale threshold is treated as an
implicit disconnect: ``connected`` flips to False, ``lastSeen`` is kept as
is, and a ``device_status`` notification with ``reason: "timeout"`` goes
out. Devices that have never been seen are left alone.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from .device_registry import DeviceRegistry, now_ms
from .fanout import REASON_TIMEOUT, NotificationFanout

logger = logging.getLogger(__name__)


@dataclass
class LivenessConfig:
    """Liveness monitor configuration"""

    enabled: bool = True
    sweep_interval_s: float = 30.0
    stale_threshold_ms: int = 45_000


class LivenessMonitor:
    """
    Sweep the registry for stale devices on a fixed delay.

    The loop sleeps the full interval after each sweep finishes, so a slow
    sweep delays the next one instead of overlapping it.

    Usage:
        monitor = LivenessMonitor(registry, fanout, LivenessConfig())
        await monitor.start()

        # Later...
        await monitor.stop()
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        fanout: NotificationFanout,
        config: LivenessConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._registry = registry
        self._fanout = fanout
        self._config = config or LivenessConfig()
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._running = False

    async def start(self) -> None:
        """Start sweep loop"""
        if not self._config.enabled:
            logger.info("Liveness monitor disabled by config")
            return

        if self._running:
            logger.warning("Liveness monitor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Liveness monitor started: interval={self._config.sweep_interval_s}s, "
            f"threshold={self._config.stale_threshold_ms}ms"
        )

    async def stop(self) -> None:
        """Stop sweep loop"""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Liveness monitor stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.sweep_interval_s)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Liveness sweep error: {e}", exc_info=True)

    def sweep(self, now: int | None = None) -> list[str]:
        """
        Demote every connected device that has been silent too long.

        Args:
            now: Current time in epoch ms (defaults to the clock)

        Returns:
            IDs of demoted devices, in catalog order
        """
        now = now if now is not None else self._clock()
        threshold = self._config.stale_threshold_ms
        demoted: list[str] = []

        for device_id, device in self._registry.all():
            if not device.connected or device.lastSeen is None:
                continue
            if now - device.lastSeen <= threshold:
                continue

            # lastSeen is passed through unchanged; only connectivity flips
            transition = self._registry.set_connected(device_id, False, device.lastSeen)
            if transition is None:
                continue
            logger.info(
                f"TIMEOUT: device {device_id} ({device.name}) silent for "
                f"{now - device.lastSeen}ms, marking disconnected"
            )
            self._fanout.notify_status(transition.device, reason=REASON_TIMEOUT)
            demoted.append(device_id)

        return demoted

    def is_running(self) -> bool:
        return self._running

    def get_config(self) -> LivenessConfig:
        return self._config


__all__ = [
    "LivenessConfig",
    "LivenessMonitor",
]
