"""Unit tests for the device registry"""

import pytest

from animatronics_bridge.gateway.device_registry import DeviceEntry, DeviceRegistry


def test_catalog_starts_disconnected(registry):
    """Every catalog device starts disconnected and never seen"""
    assert registry.count() == 6
    for _, device in registry.all():
        assert device.connected is False
        assert device.lastSeen is None


def test_catalog_order_preserved(registry):
    assert [device_id for device_id, _ in registry.all()] == ["1", "2", "3", "4", "5", "6"]
    assert list(registry.snapshot().keys()) == ["1", "2", "3", "4", "5", "6"]


def test_connect_sets_last_seen(registry):
    transition = registry.set_connected("3", True, 1_000)

    assert transition.changed is True
    assert transition.previous is False
    assert registry.get("3").connected is True
    assert registry.get("3").lastSeen == 1_000


def test_repeated_connect_refreshes_last_seen(registry):
    registry.set_connected("3", True, 1_000)
    transition = registry.set_connected("3", True, 2_000)

    assert transition.changed is False
    assert registry.get("3").lastSeen == 2_000


def test_disconnect_keeps_last_seen(registry):
    registry.set_connected("3", True, 1_000)
    transition = registry.set_connected("3", False, 5_000)

    assert transition.changed is True
    assert registry.get("3").connected is False
    assert registry.get("3").lastSeen == 1_000


def test_touch_last_seen_does_not_connect(registry):
    assert registry.touch_last_seen("2", 7_000) is True

    device = registry.get("2")
    assert device.connected is False
    assert device.lastSeen == 7_000


def test_unknown_device_is_noop(registry):
    """Unknown ids are ignored rather than added"""
    assert registry.set_connected("99", True, 1_000) is None
    assert registry.touch_last_seen("99", 1_000) is False
    assert registry.contains("99") is False
    assert registry.count() == 6


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError):
        DeviceRegistry([
            DeviceEntry(deviceId="1", name="A", icon=""),
            DeviceEntry(deviceId="1", name="B", icon=""),
        ])


def test_snapshot_shape(registry):
    registry.set_connected("1", True, 42)
    snap = registry.snapshot()

    assert snap["1"] == {
        "deviceId": "1",
        "name": "Sapo Dardo Dorada",
        "icon": "🐸",
        "connected": True,
        "lastSeen": 42,
    }
    assert registry.connected_count() == 1
