"""Gateway server: REST API + WebSocket live channel

This is the process-level server that:
1. Owns the device registry and the components around it
2. Bridges the MQTT bus (presence in, commands out)
3. Serves the REST API and the WebSocket live channel on one port

Architecture:
    GatewayServer
        ├── DeviceRegistry (single owner of device state)
        ├── PresenceReconciler  <── MqttBridge inbound
        ├── LivenessMonitor     (fixed-delay sweep task)
        ├── CommandRouter       ──> MqttBridge outbound
        └── NotificationFanout  ──> ChannelConnection per live client

All state changes run on the one event loop, so registry access needs no
locking.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from aiohttp import WSMsgType, web
from pydantic import ValidationError

from ..bus.mqtt_bridge import MqttBridge
from ..config.schema import BridgeConfig, MqttConfig
from .command_router import CommandRequest, CommandRouter
from .device_registry import DeviceRegistry, now_ms
from .error_codes import DeviceNotFoundError, GatewayError, http_status_for
from .fanout import EVENT_COMMAND_SENT, NotificationFanout, QueuedClient
from .liveness import LivenessConfig, LivenessMonitor
from .presence import PresenceReconciler
from .protocol import EventFrame, parse_frame, validate_event_params

logger = logging.getLogger(__name__)

BridgeFactory = Callable[[MqttConfig, Callable[[str, bytes], Any]], Any]


class ChannelConnection(QueuedClient):
    """A single live-channel WebSocket connection"""

    def __init__(self, websocket: web.WebSocketResponse, remote_addr: str = "", queue_size: int = 256):
        super().__init__(queue_size=queue_size)
        self.websocket = websocket
        self.remote_addr = remote_addr

    async def send_event(self, event: str, payload: Any = None) -> None:
        """Send event frame"""
        frame = EventFrame(event=event, payload=payload)
        await self.websocket.send_str(frame.model_dump_json())


class GatewayServer:
    """
    Animatronics gateway server

    Example:
        config = load_config()
        gateway = GatewayServer(config)

        # Start bus bridge, liveness monitor and HTTP listener
        await gateway.start()
        ...
        await gateway.stop()
    """

    def __init__(
        self,
        config: BridgeConfig,
        bridge_factory: BridgeFactory | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize Gateway Server

        Args:
            config: Bridge configuration
            bridge_factory: Builds the bus bridge from ``(mqtt_config,
                on_message)``; defaults to ``MqttBridge``
            clock: Epoch-ms clock shared by reconciler and monitor
        """
        self.config = config
        self.registry = DeviceRegistry.from_catalog(config.devices)
        self.fanout = NotificationFanout(self.registry)
        self.reconciler = PresenceReconciler(self.registry, self.fanout, clock=clock)

        factory = bridge_factory or (lambda mqtt_config, on_message: MqttBridge(mqtt_config, on_message))
        self.bridge = factory(config.mqtt, self.reconciler.handle_message)

        self.router = CommandRouter(self.registry, self.bridge)
        self.monitor = LivenessMonitor(
            self.registry,
            self.fanout,
            LivenessConfig(
                enabled=config.monitor.enabled,
                sweep_interval_s=config.monitor.sweep_interval_s,
                stale_threshold_ms=config.monitor.stale_threshold_ms,
            ),
            clock=clock,
        )

        self.connections: set[ChannelConnection] = set()
        self.running = False
        self._runner: web.AppRunner | None = None
        self._stopped = asyncio.Event()

        logger.info(f"GatewayServer initialized with {self.registry.count()} devices")

    # ------------------------------------------------------------------
    # HTTP application
    # ------------------------------------------------------------------

    def create_app(self) -> web.Application:
        """Build the aiohttp application (REST routes + WebSocket)"""
        app = web.Application(middlewares=[self._cors_middleware])

        app.router.add_get("/devices", self.handle_devices)
        app.router.add_get("/api/devices", self.handle_devices)
        app.router.add_get("/api/animatronics", self.handle_devices)
        app.router.add_post("/command/{device_id}/{action}", self.handle_command)
        app.router.add_post("/api/command/{device_id}/{action}", self.handle_command)
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/ws", self.handle_websocket)
        app.router.add_get("/socket", self.handle_websocket)

        return app

    def _origin_allowed(self, origin: str | None) -> bool:
        if self.config.http.allow_any_origin or not origin:
            return True
        return origin in self.config.http.allowed_origins

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler):
        origin = request.headers.get("Origin")
        if request.method == "OPTIONS":
            response = web.Response(status=204)
        else:
            response = await handler(request)
        if isinstance(response, web.WebSocketResponse):
            return response

        if self.config.http.allow_any_origin:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin and self._origin_allowed(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    async def handle_devices(self, request: web.Request) -> web.Response:
        """Full registry snapshot, deviceId -> device"""
        return web.json_response(self.registry.snapshot())

    async def handle_command(self, request: web.Request) -> web.Response:
        """Route a REST command through the admission check"""
        command = CommandRequest(
            deviceId=request.match_info["device_id"],
            action=request.match_info["action"],
            origin="rest",
        )
        try:
            result = self.router.route(command)
        except GatewayError as e:
            return web.json_response(e.to_dict(), status=http_status_for(e))
        return web.json_response(result.to_dict())

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "busConnected": bool(getattr(self.bridge, "connected", False)),
            "connectedCount": self.registry.connected_count(),
        })

    # ------------------------------------------------------------------
    # Live channel
    # ------------------------------------------------------------------

    async def handle_websocket(self, request: web.Request) -> web.StreamResponse:
        """Handle WebSocket upgrade and connection"""
        origin = request.headers.get("Origin")
        if not self._origin_allowed(origin):
            logger.warning(f"Rejected WebSocket from disallowed origin {origin}")
            raise web.HTTPForbidden(text="Origin not allowed")

        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        remote_addr = request.remote or "unknown"
        connection = ChannelConnection(ws, remote_addr, queue_size=self.config.http.client_queue_size)
        writer = asyncio.create_task(connection.run_writer(connection.send_event))
        writer.add_done_callback(lambda _: self._on_writer_done(connection))
        self.connections.add(connection)

        try:
            logger.info(f"Live client connected: {remote_addr} ({connection.client_id})")
            self.fanout.attach(connection)

            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self.handle_message(connection, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.error(f"WebSocket error: {ws.exception()}")
                    break
        except Exception as e:
            logger.error(f"Connection error: {e}", exc_info=True)
        finally:
            self.fanout.detach(connection)
            self.connections.discard(connection)
            connection.close()
            writer.cancel()
            logger.info(f"Live client disconnected: {remote_addr} ({connection.client_id})")

        return ws

    def _on_writer_done(self, connection: ChannelConnection) -> None:
        # Writer ends on overflow or send failure; drop the socket so the
        # client reconnects and gets a fresh snapshot
        if self.running and not connection.websocket.closed:
            asyncio.ensure_future(connection.websocket.close())

    def handle_message(self, connection: ChannelConnection, message: str) -> None:
        """Handle one inbound live-channel message"""
        try:
            frame = parse_frame(json.loads(message))
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON from {connection.client_id}: {e}")
            return

        if frame is None:
            logger.warning(f"Unknown message format from {connection.client_id}: {message[:200]}")
            return

        try:
            if frame.event == "send_command":
                self._on_send_command(connection, frame.payload)
            elif frame.event == "ping_device":
                self._on_ping_device(connection, frame.payload)
            else:
                logger.warning(f"Unknown event {frame.event!r} from {connection.client_id}")
        except Exception as e:
            logger.error(f"Error handling event {frame.event}: {e}", exc_info=True)

    def _on_send_command(self, connection: ChannelConnection, payload: Any) -> None:
        raw = payload if isinstance(payload, dict) else {}
        try:
            params = validate_event_params("send_command", raw)
        except ValidationError as e:
            self.fanout.send_to(connection, EVENT_COMMAND_SENT, {
                "deviceId": raw.get("deviceId"),
                "action": raw.get("action"),
                "success": False,
                "error": f"Invalid parameters: {e.error_count()} error(s)",
            })
            return

        reply: dict[str, Any] = {"deviceId": params.deviceId, "action": params.action}
        try:
            self.router.route(CommandRequest(params.deviceId, params.action, origin="channel"))
            reply["success"] = True
        except GatewayError as e:
            reply["success"] = False
            reply["error"] = str(e)
        self.fanout.send_to(connection, EVENT_COMMAND_SENT, reply)

    def _on_ping_device(self, connection: ChannelConnection, payload: Any) -> None:
        try:
            params = validate_event_params("ping_device", payload if isinstance(payload, dict) else {})
        except ValidationError:
            logger.warning(f"Invalid ping_device payload from {connection.client_id}: {payload!r}")
            return
        try:
            self.router.ping(params.deviceId)
        except DeviceNotFoundError as e:
            logger.warning(f"Ping dropped: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start bus bridge, liveness monitor and HTTP listener"""
        host = self.config.http.host
        port = self.config.http.port

        self.running = True
        self._stopped.clear()
        await self.bridge.start()
        await self.monitor.start()

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()

        logger.info("=" * 40)
        logger.info("Animatronics gateway started")
        logger.info(f"REST API:  http://{host}:{port}/devices")
        logger.info(f"WebSocket: ws://{host}:{port}/ws")
        logger.info(f"Health:    http://{host}:{port}/health")
        logger.info("=" * 40)

    async def serve_forever(self) -> None:
        """Start and block until ``stop`` is called"""
        await self.start()
        try:
            await self._stopped.wait()
        except asyncio.CancelledError:
            logger.info("Gateway server task cancelled, cleaning up...")
            raise
        finally:
            if self.running:
                await self.stop()

    async def stop(self) -> None:
        """Stop the gateway gracefully"""
        logger.info("Stopping gateway...")
        self.running = False

        await self.monitor.stop()

        if self.connections:
            logger.debug(f"Closing {len(self.connections)} WebSocket connections...")
            close_tasks = [connection.websocket.close() for connection in list(self.connections)]
            try:
                await asyncio.wait_for(asyncio.gather(*close_tasks, return_exceptions=True), timeout=2.0)
            except asyncio.TimeoutError:
                logger.warning("WebSocket close timed out")
            self.connections.clear()

        await self.bridge.stop()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self._stopped.set()
        logger.info("Gateway stopped")


__all__ = [
    "ChannelConnection",
    "GatewayServer",
]
