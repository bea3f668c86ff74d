"""Backoff policy for the bus reconnect loop."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Retry configuration."""

    min_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter: float = 0.1


MQTT_RECONNECT_DEFAULTS = RetryConfig(
    min_delay_ms=1000,
    max_delay_ms=30000,
    jitter=0.1,
)


def backoff_delay_ms(attempt: int, config: RetryConfig | None = None) -> float:
    """Delay before reconnect attempt ``attempt`` (1-based), exponential with jitter.

    Args:
        attempt: Number of consecutive failures so far
        config: Retry configuration

    Returns:
        Delay in milliseconds, never negative
    """
    if config is None:
        config = MQTT_RECONNECT_DEFAULTS

    attempt = max(1, attempt)
    delay_ms = config.min_delay_ms * (2 ** min(attempt - 1, 16))
    delay_ms = min(delay_ms, config.max_delay_ms)

    if config.jitter > 0:
        jitter_amount = delay_ms * config.jitter
        delay_ms += random.uniform(-jitter_amount, jitter_amount)

    return max(0, delay_ms)


__all__ = [
    "MQTT_RECONNECT_DEFAULTS",
    "RetryConfig",
    "backoff_delay_ms",
]
