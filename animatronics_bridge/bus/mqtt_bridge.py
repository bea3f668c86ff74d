"""
MQTT bridge for the animatronics fleet.

Owns the broker connection: subscribes to presence/response topics,
forwards every inbound message to a handler, and publishes outbound
commands. Publishing only enqueues, so callers never suspend; queued
messages go out as soon as the link is up and are retried after a
reconnect. Losing the broker link does not touch device state.

Usage:
    bridge = MqttBridge(config.mqtt, on_message=reconciler.handle_message)
    await bridge.start()
    bridge.publish("animatronics/3/wave", "activate")

    # Later...
    await bridge.stop()
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import ssl
from typing import Any, Callable

import aiomqtt

from ..config.schema import MqttConfig
from ..infra.retry_policy import RetryConfig, backoff_delay_ms
from .topics import SUBSCRIPTIONS

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Any]
ClientFactory = Callable[[], aiomqtt.Client]


class MqttBridge:
    """
    Reconnecting MQTT client with an outbound queue.

    Args:
        config: Broker configuration
        on_message: Called with ``(topic, payload)`` for each inbound message
        client_factory: Builds a fresh client per connection attempt
            (defaults to ``aiomqtt.Client`` from ``config``)
        max_pending: Outbound queue bound; the oldest message is dropped
            when it is exceeded
    """

    def __init__(
        self,
        config: MqttConfig,
        on_message: MessageHandler,
        client_factory: ClientFactory | None = None,
        max_pending: int = 1000,
    ):
        self._config = config
        self._on_message = on_message
        self._client_factory = client_factory or self._default_client
        self._outbound: asyncio.Queue[tuple[str, str]] = asyncio.Queue(maxsize=max_pending)
        self._inflight: tuple[str, str] | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._connected = False
        self._failures = 0
        self._retry = RetryConfig(
            min_delay_ms=config.reconnect_min_ms,
            max_delay_ms=config.reconnect_max_ms,
        )
        self.client_id = f"{config.client_id_prefix}_{secrets.token_hex(4)}"

    @property
    def connected(self) -> bool:
        return self._connected

    def pending(self) -> int:
        """Number of messages waiting to be published"""
        return self._outbound.qsize() + (1 if self._inflight else 0)

    def publish(self, topic: str, payload: str) -> None:
        """Queue a message for publishing (fire-and-forget)"""
        if self._outbound.full():
            dropped_topic, _ = self._outbound.get_nowait()
            logger.warning(f"Outbound queue full, dropped oldest message for {dropped_topic}")
        self._outbound.put_nowait((topic, payload))
        if not self._connected:
            logger.debug(f"Broker link down, queued {topic}")

    def _default_client(self) -> aiomqtt.Client:
        return aiomqtt.Client(
            hostname=self._config.host,
            port=self._config.port,
            username=self._config.username,
            password=self._config.password if self._config.username else None,
            identifier=self.client_id,
            clean_session=True,
            keepalive=self._config.keepalive,
            timeout=self._config.connect_timeout_s,
            tls_context=ssl.create_default_context() if self._config.tls else None,
        )

    async def start(self) -> None:
        """Start the connection loop"""
        if self._running:
            logger.warning("MQTT bridge already running")
            return
        self._running = True
        logger.info(
            f"MQTT config: url={self._config.url}, client_id={self.client_id}, "
            f"auth={'yes' if self._config.username else 'no'}"
        )
        self._task = asyncio.create_task(self._connection_loop())

    async def stop(self) -> None:
        """Stop the bridge, draining queued publishes best-effort"""
        if self._connected and self.pending():
            try:
                await asyncio.wait_for(self._wait_drained(), timeout=self._config.drain_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(f"MQTT drain timed out with {self.pending()} messages pending")

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected = False
        logger.info("MQTT bridge stopped")

    async def _wait_drained(self) -> None:
        while self.pending() and self._connected:
            await asyncio.sleep(0.05)

    async def _connection_loop(self) -> None:
        while self._running:
            try:
                async with self._client_factory() as client:
                    self._connected = True
                    self._failures = 0
                    logger.info(f"Connected to MQTT broker {self._config.url}")
                    for topic in SUBSCRIPTIONS:
                        await client.subscribe(topic)
                    logger.info(f"Subscribed to {', '.join(SUBSCRIPTIONS)}, waiting for devices")
                    await self._serve(client)
            except asyncio.CancelledError:
                self._connected = False
                raise
            except aiomqtt.MqttError as e:
                if self._connected:
                    logger.warning(f"MQTT connection lost: {e}")
                else:
                    logger.error(f"MQTT error: {e}")
            except Exception as e:
                logger.error(f"MQTT bridge error: {e}", exc_info=True)
            self._connected = False

            if not self._running:
                break
            self._failures += 1
            delay_ms = backoff_delay_ms(self._failures, self._retry)
            logger.info(f"Reconnecting to MQTT in {delay_ms / 1000:.1f}s (attempt {self._failures})")
            await asyncio.sleep(delay_ms / 1000)

    async def _serve(self, client: aiomqtt.Client) -> None:
        """Run receive and publish loops until either one ends"""
        receiver = asyncio.create_task(self._receive_loop(client))
        publisher = asyncio.create_task(self._publish_loop(client))
        try:
            done, _ = await asyncio.wait({receiver, publisher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (receiver, publisher):
                task.cancel()
            await asyncio.gather(receiver, publisher, return_exceptions=True)
        for task in done:
            task.result()

    async def _receive_loop(self, client: aiomqtt.Client) -> None:
        async for message in client.messages:
            self._dispatch(str(message.topic), message.payload)

    async def _publish_loop(self, client: aiomqtt.Client) -> None:
        while True:
            if self._inflight is None:
                self._inflight = await self._outbound.get()
            topic, payload = self._inflight
            # Left in flight on failure so the next connection retries it
            await client.publish(topic, payload=payload)
            self._inflight = None
            logger.debug(f"Published {topic} = {payload}")

    def _dispatch(self, topic: str, payload: Any) -> None:
        if payload is None:
            payload = b""
        elif isinstance(payload, str):
            payload = payload.encode("utf-8")
        elif not isinstance(payload, (bytes, bytearray)):
            payload = str(payload).encode("utf-8")
        try:
            self._on_message(topic, bytes(payload))
        except Exception as e:
            logger.error(f"Error handling MQTT message on {topic}: {e}", exc_info=True)


__all__ = [
    "MqttBridge",
]
