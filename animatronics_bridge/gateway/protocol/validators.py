"""
Live channel event parameter validation

Pydantic models for the payloads clients send over the WebSocket channel.
"""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Inbound events
# ============================================================================

class SendCommandParams(BaseModel):
    """Parameters for send_command"""
    deviceId: str = Field(..., min_length=1, description="Catalog device id")
    action: str = Field(..., min_length=1, description="Action to trigger")

    @field_validator("deviceId", mode="before")
    @classmethod
    def coerce_device_id(cls, v):
        # Some front-ends send numeric ids
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class PingDeviceParams(BaseModel):
    """Parameters for ping_device"""
    deviceId: str = Field(..., min_length=1)

    @field_validator("deviceId", mode="before")
    @classmethod
    def coerce_device_id(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# ============================================================================
# Event registry
# ============================================================================

EVENT_PARAM_MODELS: Dict[str, Type[BaseModel]] = {
    "send_command": SendCommandParams,
    "ping_device": PingDeviceParams,
}


def validate_event_params(event: str, params: Optional[Dict[str, Any]]) -> BaseModel:
    """
    Validate the payload of an inbound event.

    Args:
        event: Event name
        params: Event payload

    Returns:
        Validated parameter model

    Raises:
        KeyError: If the event has no registered model
        pydantic.ValidationError: If the payload is invalid
    """
    model = EVENT_PARAM_MODELS[event]
    return model(**(params or {}))


__all__ = [
    "EVENT_PARAM_MODELS",
    "PingDeviceParams",
    "SendCommandParams",
    "validate_event_params",
]
