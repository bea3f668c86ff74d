"""Tests for the MQTT topic layout"""

import pytest

from animatronics_bridge.bus.topics import (
    SUBSCRIPTIONS,
    command_topic,
    is_valid_level,
    parse_inbound_topic,
    ping_topic,
)
from animatronics_bridge.gateway.error_codes import ErrorCode, MalformedSignalError


def test_subscriptions():
    assert SUBSCRIPTIONS == ("animatronics/+/status", "animatronics/+/response")


def test_parse_inbound_topic():
    parsed = parse_inbound_topic("animatronics/3/status")
    assert parsed.device_id == "3"
    assert parsed.message_type == "status"


@pytest.mark.parametrize("topic", [
    "animatronics/3",
    "animatronics/3/status/extra",
    "other/3/status",
    "animatronics//status",
    "animatronics/3/",
    "",
])
def test_parse_malformed_topic(topic):
    with pytest.raises(MalformedSignalError) as exc_info:
        parse_inbound_topic(topic)
    assert exc_info.value.error_code == ErrorCode.MALFORMED_SIGNAL
    assert exc_info.value.to_dict()["topic"] == topic


def test_outbound_topics():
    assert command_topic("3", "wave") == "animatronics/3/wave"
    assert ping_topic("3") == "animatronics/3/ping"


def test_valid_levels():
    assert is_valid_level("wave") is True
    assert is_valid_level("") is False
    assert is_valid_level("a/b") is False
    assert is_valid_level("+") is False
    assert is_valid_level("run#") is False
