"""
Notification fan-out to attached live clients.

Every registry transition is pushed to every attached client. Delivery
never awaits the network: each client owns an outbound queue drained by
its own writer task, so the order a client observes is the order events
were enqueued, which is the order the registry was mutated.

A client that cannot keep up (full queue) or has gone away is detached and
simply misses events until it reattaches, at which point it receives a
fresh snapshot.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Protocol

from .device_registry import DeviceEntry, DeviceRegistry

logger = logging.getLogger(__name__)

EVENT_DEVICE_STATUS = "device_status"
EVENT_DEVICE_RESPONSE = "device_response"
EVENT_COMMAND_SENT = "command_sent"

REASON_TIMEOUT = "timeout"


class LiveClient(Protocol):
    """Anything the fan-out can push events to"""

    client_id: str

    def deliver(self, event: str, payload: Any) -> bool:
        """Enqueue an event; return False if the client can no longer receive."""
        ...


class QueuedClient:
    """
    Live client backed by a bounded outbound queue.

    ``deliver`` only enqueues. ``run_writer`` drains the queue through the
    transport's send coroutine until ``close`` is called or a send fails.
    """

    def __init__(self, queue_size: int = 256, client_id: str | None = None):
        self.client_id = client_id or uuid.uuid4().hex[:8]
        self._queue: asyncio.Queue[tuple[str, Any] | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: str, payload: Any) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait((event, payload))
        except asyncio.QueueFull:
            logger.warning(f"Client {self.client_id} outbound queue full, dropping client")
            self._closed = True
            # Discard the backlog so the writer stops promptly
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(None)
            return False
        return True

    def close(self) -> None:
        """Stop the writer after already queued events are sent"""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def pending(self) -> int:
        return self._queue.qsize()

    async def run_writer(self, send: Callable[[str, Any], Awaitable[None]]) -> None:
        """Drain queued events through ``send`` in order"""
        while True:
            item = await self._queue.get()
            if item is None:
                break
            event, payload = item
            try:
                await send(event, payload)
            except Exception as e:
                logger.debug(f"Client {self.client_id} send failed: {e}")
                self._closed = True
                break


class NotificationFanout:
    """
    Broadcast device notifications to attached live clients.

    Usage:
        fanout = NotificationFanout(registry)

        fanout.attach(client)          # client receives full snapshot
        fanout.notify_status(device)   # every client receives device_status
        fanout.notify_response("3", "wave")
        fanout.detach(client)
    """

    def __init__(self, registry: DeviceRegistry):
        self._registry = registry
        self._clients: dict[str, LiveClient] = {}  # client_id -> client

    def attach(self, client: LiveClient) -> int:
        """
        Attach a client and replay the current snapshot to it.

        Args:
            client: Live client

        Returns:
            Number of snapshot events delivered
        """
        self._clients[client.client_id] = client
        replayed = 0
        for _, device in self._registry.all():
            if not client.deliver(EVENT_DEVICE_STATUS, status_payload(device)):
                self.detach(client)
                break
            replayed += 1
        logger.debug(f"Client {client.client_id} attached, replayed {replayed} devices")
        return replayed

    def detach(self, client: LiveClient) -> None:
        self._clients.pop(client.client_id, None)

    def broadcast(self, event: str, payload: Any) -> int:
        """
        Push an event to every attached client.

        Returns:
            Number of clients the event was delivered to
        """
        delivered = 0
        for client in list(self._clients.values()):
            if client.deliver(event, payload):
                delivered += 1
            else:
                logger.info(f"Detaching unreachable client {client.client_id}")
                self.detach(client)
        return delivered

    def send_to(self, client: LiveClient, event: str, payload: Any) -> bool:
        """Push an event to a single client"""
        return client.deliver(event, payload)

    def notify_status(self, device: DeviceEntry, reason: str | None = None) -> int:
        return self.broadcast(EVENT_DEVICE_STATUS, status_payload(device, reason))

    def notify_response(self, device_id: str, action: str) -> int:
        return self.broadcast(EVENT_DEVICE_RESPONSE, {"deviceId": device_id, "action": action})

    def count(self) -> int:
        """Get number of attached clients"""
        return len(self._clients)


def status_payload(device: DeviceEntry, reason: str | None = None) -> dict[str, Any]:
    """Build a device_status notification payload"""
    payload = device.to_dict()
    if reason is not None:
        payload["reason"] = reason
    return payload


__all__ = [
    "EVENT_COMMAND_SENT",
    "EVENT_DEVICE_RESPONSE",
    "EVENT_DEVICE_STATUS",
    "REASON_TIMEOUT",
    "LiveClient",
    "NotificationFanout",
    "QueuedClient",
    "status_payload",
]
