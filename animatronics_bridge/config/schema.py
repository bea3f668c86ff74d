"""
Configuration schema

Pydantic models for the bridge configuration. Every field has a default,
so an empty config (and an empty environment) yields a runnable bridge
talking to a local broker.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .catalog import DEFAULT_CATALOG


class MqttConfig(BaseModel):
    """MQTT broker connection"""
    host: str = "localhost"
    port: int = Field(1883, gt=0, lt=65536)
    username: Optional[str] = None
    password: Optional[str] = None
    protocol: Literal["mqtt", "mqtts"] = "mqtt"
    client_id_prefix: str = "bridge"
    keepalive: int = Field(60, gt=0)
    connect_timeout_s: float = Field(4.0, gt=0)
    reconnect_min_ms: int = Field(1000, ge=0)
    reconnect_max_ms: int = Field(30_000, ge=0)
    drain_timeout_s: float = Field(2.0, ge=0)

    @field_validator("username", "password", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def tls(self) -> bool:
        return self.protocol == "mqtts"

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


class HttpConfig(BaseModel):
    """REST + WebSocket listener"""
    host: str = "0.0.0.0"
    port: int = Field(5000, gt=0, lt=65536)
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    client_queue_size: int = Field(256, gt=0)

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            v = [part.strip() for part in v.split(",")]
        if isinstance(v, list):
            v = [origin for origin in v if origin]
        return v or ["*"]

    @property
    def allow_any_origin(self) -> bool:
        return "*" in self.allowed_origins


class MonitorConfig(BaseModel):
    """Liveness monitor"""
    enabled: bool = True
    sweep_interval_s: float = Field(30.0, gt=0)
    stale_threshold_ms: int = Field(45_000, gt=0)


class CatalogDevice(BaseModel):
    """Catalog entry"""
    id: str = Field(..., min_length=1)
    name: str
    icon: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("id")
    @classmethod
    def single_topic_level(cls, v):
        if any(ch in v for ch in "/+#"):
            raise ValueError("device id must be a single topic level")
        return v


class BridgeConfig(BaseModel):
    """Root configuration"""
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    devices: list[CatalogDevice] = Field(
        default_factory=lambda: [CatalogDevice(**entry) for entry in DEFAULT_CATALOG]
    )

    @model_validator(mode="after")
    def unique_device_ids(self):
        ids = [device.id for device in self.devices]
        if not ids:
            raise ValueError("device catalog is empty")
        if len(ids) != len(set(ids)):
            raise ValueError("device ids must be unique")
        return self


__all__ = [
    "BridgeConfig",
    "CatalogDevice",
    "HttpConfig",
    "MonitorConfig",
    "MqttConfig",
]
