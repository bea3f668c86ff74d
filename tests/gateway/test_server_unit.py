"""
Unit tests for GatewayServer

Exercises the REST API and the WebSocket live channel through aiohttp's
test client, with the bus bridge replaced by an in-memory fake.
"""
import asyncio

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer, unused_port

from animatronics_bridge.config.schema import BridgeConfig
from animatronics_bridge.gateway.server import GatewayServer


class FakeBridge:
    """Records publishes instead of talking to a broker"""

    def __init__(self, config, on_message):
        self.config = config
        self.on_message = on_message
        self.published = []
        self.connected = True
        self.started = False
        self.stopped = False

    def publish(self, topic, payload):
        self.published.append((topic, payload))

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


def make_gateway(**config):
    config.setdefault("monitor", {"enabled": False})
    return GatewayServer(BridgeConfig(**config), bridge_factory=FakeBridge, clock=lambda: 1_000)


async def receive_event(ws, timeout=1.0):
    frame = await ws.receive_json(timeout=timeout)
    assert frame["type"] == "event"
    return frame["event"], frame["payload"]


class TestRestApi:
    """REST surface"""

    @pytest.mark.asyncio
    async def test_devices_snapshot(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            for path in ("/devices", "/api/devices", "/api/animatronics"):
                resp = await client.get(path)
                assert resp.status == 200
                body = await resp.json()
                assert list(body.keys()) == ["1", "2", "3", "4", "5", "6"]
                assert body["3"]["name"] == "Armadillo"
                assert body["3"]["connected"] is False
                assert body["3"]["lastSeen"] is None

    @pytest.mark.asyncio
    async def test_command_unknown_device(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            resp = await client.post("/command/99/wave")
            assert resp.status == 404
            body = await resp.json()
            assert body["error"] == "Device 99 not found"
        assert gateway.bridge.published == []

    @pytest.mark.asyncio
    async def test_command_admission(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            resp = await client.post("/command/3/wave")
            assert resp.status == 400
            body = await resp.json()
            assert body["connected"] is False
            assert body["error"] == "Armadillo is disconnected"
            assert gateway.bridge.published == []

            gateway.reconciler.handle_message("animatronics/3/status", b"connected")

            resp = await client.post("/api/command/3/wave")
            assert resp.status == 200
            assert await resp.json() == {"success": True, "message": "wave sent to Armadillo"}
            assert gateway.bridge.published == [("animatronics/3/wave", "activate")]

    @pytest.mark.asyncio
    async def test_command_reserved_action(self):
        gateway = make_gateway()
        gateway.registry.set_connected("3", True, 1)
        async with TestClient(TestServer(gateway.create_app())) as client:
            resp = await client.post("/command/3/status")
            assert resp.status == 400
            body = await resp.json()
            assert body["code"] == "INVALID_REQUEST"
        assert gateway.bridge.published == []

    @pytest.mark.asyncio
    async def test_health(self):
        gateway = make_gateway()
        gateway.registry.set_connected("1", True, 1)
        async with TestClient(TestServer(gateway.create_app())) as client:
            resp = await client.get("/health")
            assert resp.status == 200
            assert await resp.json() == {"status": "ok", "busConnected": True, "connectedCount": 1}

    @pytest.mark.asyncio
    async def test_cors_any_origin(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            resp = await client.options("/devices", headers={"Origin": "http://app.example"})
            assert resp.status == 204
            assert resp.headers["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.asyncio
    async def test_cors_allowed_origin_echoed(self):
        gateway = make_gateway(http={"allowed_origins": "http://app.example"})
        async with TestClient(TestServer(gateway.create_app())) as client:
            resp = await client.get("/devices", headers={"Origin": "http://app.example"})
            assert resp.headers["Access-Control-Allow-Origin"] == "http://app.example"

            resp = await client.get("/devices", headers={"Origin": "http://other.example"})
            assert "Access-Control-Allow-Origin" not in resp.headers


class TestLiveChannel:
    """WebSocket surface"""

    @pytest.mark.asyncio
    async def test_attach_receives_snapshot(self):
        gateway = make_gateway()
        gateway.registry.set_connected("2", True, 500)
        async with TestClient(TestServer(gateway.create_app())) as client:
            ws = await client.ws_connect("/ws")
            events = [await receive_event(ws) for _ in range(6)]

            assert [name for name, _ in events] == ["device_status"] * 6
            assert [payload["deviceId"] for _, payload in events] == ["1", "2", "3", "4", "5", "6"]
            assert events[1][1]["connected"] is True
            assert events[1][1]["lastSeen"] == 500
            await ws.close()

    @pytest.mark.asyncio
    async def test_status_and_response_broadcast(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            ws_a = await client.ws_connect("/ws")
            ws_b = await client.ws_connect("/socket")
            for ws in (ws_a, ws_b):
                for _ in range(6):
                    await receive_event(ws)

            gateway.reconciler.handle_message("animatronics/4/status", b"connected")
            gateway.reconciler.handle_message("animatronics/4/response", b"swim")

            for ws in (ws_a, ws_b):
                name, payload = await receive_event(ws)
                assert name == "device_status"
                assert payload["deviceId"] == "4"
                assert payload["connected"] is True
                assert payload["lastSeen"] == 1_000

                name, payload = await receive_event(ws)
                assert name == "device_response"
                assert payload == {"deviceId": "4", "action": "swim"}

            await ws_a.close()
            await ws_b.close()

    @pytest.mark.asyncio
    async def test_send_command(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            ws = await client.ws_connect("/ws")
            for _ in range(6):
                await receive_event(ws)

            await ws.send_json({"type": "event", "event": "send_command", "payload": {"deviceId": "3", "action": "wave"}})
            name, payload = await receive_event(ws)
            assert name == "command_sent"
            assert payload["success"] is False
            assert payload["error"] == "Armadillo is disconnected"

            gateway.reconciler.handle_message("animatronics/3/status", b"connected")
            await receive_event(ws)

            await ws.send_json({"event": "send_command", "payload": {"deviceId": 3, "action": "wave"}})
            name, payload = await receive_event(ws)
            assert name == "command_sent"
            assert payload == {"deviceId": "3", "action": "wave", "success": True}
            assert gateway.bridge.published == [("animatronics/3/wave", "activate")]
            await ws.close()

    @pytest.mark.asyncio
    async def test_send_command_invalid_params(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            ws = await client.ws_connect("/ws")
            for _ in range(6):
                await receive_event(ws)

            await ws.send_json({"event": "send_command", "payload": {"deviceId": "3"}})
            name, payload = await receive_event(ws)
            assert name == "command_sent"
            assert payload["success"] is False
            assert payload["error"].startswith("Invalid parameters")
            await ws.close()

    @pytest.mark.asyncio
    async def test_ping_device_and_garbage(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            ws = await client.ws_connect("/ws")
            for _ in range(6):
                await receive_event(ws)

            await ws.send_str("not json")
            await ws.send_json({"event": "dance_party"})
            await ws.send_json({"event": "ping_device", "payload": {"deviceId": "99"}})
            await ws.send_json({"event": "ping_device", "payload": {"deviceId": "5"}})

            for _ in range(50):
                if gateway.bridge.published:
                    break
                await asyncio.sleep(0.01)

            assert gateway.bridge.published == [("animatronics/5/ping", "ping")]
            assert not ws.closed
            await ws.close()

    @pytest.mark.asyncio
    async def test_disconnect_detaches(self):
        gateway = make_gateway()
        async with TestClient(TestServer(gateway.create_app())) as client:
            ws = await client.ws_connect("/ws")
            for _ in range(6):
                await receive_event(ws)
            assert gateway.fanout.count() == 1

            await ws.close()
            for _ in range(50):
                if gateway.fanout.count() == 0:
                    break
                await asyncio.sleep(0.01)

            assert gateway.fanout.count() == 0
            assert gateway.connections == set()

    @pytest.mark.asyncio
    async def test_disallowed_origin_rejected(self):
        gateway = make_gateway(http={"allowed_origins": ["http://app.example"]})
        async with TestClient(TestServer(gateway.create_app())) as client:
            with pytest.raises(aiohttp.WSServerHandshakeError) as exc_info:
                await client.ws_connect("/ws", headers={"Origin": "http://evil.example"})
            assert exc_info.value.status == 403

            ws = await client.ws_connect("/ws", headers={"Origin": "http://app.example"})
            name, _ = await receive_event(ws)
            assert name == "device_status"
            await ws.close()


@pytest.mark.asyncio
async def test_start_and_stop():
    gateway = make_gateway(
        http={"host": "127.0.0.1", "port": unused_port()},
        monitor={"enabled": True, "sweep_interval_s": 60},
    )

    await gateway.start()
    assert gateway.running is True
    assert gateway.bridge.started is True
    assert gateway.monitor.is_running() is True

    await gateway.stop()
    assert gateway.running is False
    assert gateway.bridge.stopped is True
    assert gateway.monitor.is_running() is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
