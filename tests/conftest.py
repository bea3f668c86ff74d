"""
Pytest configuration for animatronics-bridge tests

Shared fixtures: a registry built from the default catalog, a fan-out over
it, and recording fakes for live clients and the bus publisher.
"""
import pytest

from animatronics_bridge.config.catalog import DEFAULT_CATALOG
from animatronics_bridge.config.schema import CatalogDevice
from animatronics_bridge.gateway.device_registry import DeviceRegistry
from animatronics_bridge.gateway.fanout import NotificationFanout


class RecordingClient:
    """Live client that records every delivered event"""

    def __init__(self, client_id: str, accept: bool = True):
        self.client_id = client_id
        self.accept = accept
        self.events: list[tuple[str, dict]] = []

    def deliver(self, event, payload):
        if not self.accept:
            return False
        self.events.append((event, payload))
        return True

    def names(self):
        return [event for event, _ in self.events]


class RecordingPublisher:
    """Bus publisher that records every publish"""

    def __init__(self):
        self.published: list[tuple[str, str]] = []

    def publish(self, topic, payload):
        self.published.append((topic, payload))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the host environment out of config loading"""
    for var in (
        "MQTT_HOST", "MQTT_PORT", "MQTT_USER", "MQTT_PASSWORD", "MQTT_PROTOCOL",
        "HOST", "PORT", "FRONTEND_URL", "MONITOR_SWEEP_INTERVAL",
        "MONITOR_STALE_THRESHOLD_MS", "BRIDGE_CONFIG",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def registry():
    return DeviceRegistry.from_catalog(CatalogDevice(**entry) for entry in DEFAULT_CATALOG)


@pytest.fixture
def fanout(registry):
    return NotificationFanout(registry)


@pytest.fixture
def make_client():
    def _make(client_id="c1", accept=True):
        return RecordingClient(client_id, accept=accept)
    return _make


@pytest.fixture
def publisher():
    return RecordingPublisher()
