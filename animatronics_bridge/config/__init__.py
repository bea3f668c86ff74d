"""Bridge configuration."""

from .loader import invalidate_config_cache, load_config
from .schema import BridgeConfig, CatalogDevice, HttpConfig, MonitorConfig, MqttConfig

__all__ = [
    "BridgeConfig",
    "CatalogDevice",
    "HttpConfig",
    "MonitorConfig",
    "MqttConfig",
    "invalidate_config_cache",
    "load_config",
]
