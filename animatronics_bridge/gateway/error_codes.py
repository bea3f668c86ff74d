from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
    INVALID_REQUEST = "INVALID_REQUEST"
    MALFORMED_SIGNAL = "MALFORMED_SIGNAL"


class GatewayError(Exception):
    def __init__(self, message: str, error_code: ErrorCode, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "code": self.error_code.value,
            **self.details,
        }


class DeviceNotFoundError(GatewayError):
    def __init__(self, device_id: str, message: str | None = None):
        msg = message or f"Device {device_id} not found"
        super().__init__(msg, ErrorCode.NOT_FOUND)
        self.device_id = device_id


class DeviceUnavailableError(GatewayError):
    def __init__(self, device_id: str, name: str, message: str | None = None):
        msg = message or f"{name} is disconnected"
        super().__init__(msg, ErrorCode.DEVICE_UNAVAILABLE, {"connected": False})
        self.device_id = device_id
        self.name = name


class InvalidCommandError(GatewayError):
    def __init__(self, message: str | None = None):
        msg = message or "Invalid command"
        super().__init__(msg, ErrorCode.INVALID_REQUEST)


class MalformedSignalError(GatewayError):
    def __init__(self, topic: str, message: str | None = None):
        msg = message or f"Malformed signal on topic {topic!r}"
        super().__init__(msg, ErrorCode.MALFORMED_SIGNAL, {"topic": topic})
        self.topic = topic


_HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DEVICE_UNAVAILABLE: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.MALFORMED_SIGNAL: 400,
}


def http_status_for(error: GatewayError) -> int:
    """Map a gateway error onto the HTTP status the REST surface returns."""
    return _HTTP_STATUS.get(error.error_code, 500)


__all__ = [
    "ErrorCode",
    "GatewayError",
    "DeviceNotFoundError",
    "DeviceUnavailableError",
    "InvalidCommandError",
    "MalformedSignalError",
    "http_status_for",
]
