"""Configuration loader for the animatronics bridge.

Loads configuration from an optional file and environment variables.

- JSON5 parsing (comments, trailing commas, unquoted keys)
- ${ENV_VAR} substitution inside the file
- Environment variables override the file (MQTT_HOST, PORT, FRONTEND_URL, ...)
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import json5

from .schema import BridgeConfig

logger = logging.getLogger(__name__)

_cached_config: Optional[BridgeConfig] = None

CONFIG_PATH_ENV = "BRIDGE_CONFIG"

# env var -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MQTT_HOST": ("mqtt", "host"),
    "MQTT_PORT": ("mqtt", "port"),
    "MQTT_USER": ("mqtt", "username"),
    "MQTT_PASSWORD": ("mqtt", "password"),
    "MQTT_PROTOCOL": ("mqtt", "protocol"),
    "HOST": ("http", "host"),
    "PORT": ("http", "port"),
    "FRONTEND_URL": ("http", "allowed_origins"),
    "MONITOR_SWEEP_INTERVAL": ("monitor", "sweep_interval_s"),
    "MONITOR_STALE_THRESHOLD_MS": ("monitor", "stale_threshold_ms"),
}


# ---------------------------------------------------------------------------
# File parsing
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _substitute_env_vars(obj: Any, env: Mapping[str, str]) -> Any:
    """Recursively replace ${VAR} with values from *env*; unknown vars stay as-is."""
    if isinstance(obj, str):

        def _replace(m: re.Match) -> str:
            return env.get(m.group(1), m.group(0))

        return _ENV_VAR_RE.sub(_replace, obj)
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(v, env) for v in obj]
    return obj


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts (override wins on scalar conflicts)."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def load_config_raw(path: Path, env: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Load a config file with JSON5 parsing and env-var substitution.

    Returns the resolved config dict (ready for schema validation).
    """
    env = os.environ if env is None else env
    obj = json5.loads(path.read_text(encoding="utf-8"))
    obj = _substitute_env_vars(obj, env)
    return obj if isinstance(obj, dict) else {}


def env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect config overrides from environment variables."""
    overrides: dict[str, Any] = {}
    for var, (section, field) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        overrides.setdefault(section, {})[field] = value
    return overrides


# ---------------------------------------------------------------------------
# Core load
# ---------------------------------------------------------------------------

def _resolve_config_path(config_path: Optional[str | Path], env: Mapping[str, str]) -> Optional[Path]:
    if config_path:
        return Path(config_path)
    if env.get(CONFIG_PATH_ENV):
        return Path(env[CONFIG_PATH_ENV])

    candidates = [
        Path.cwd() / "animatronics.json5",
        Path.cwd() / "animatronics.json",
        Path.cwd() / "config" / "animatronics.json5",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_config(
    config_path: Optional[str | Path] = None,
    env: Mapping[str, str] | None = None,
) -> BridgeConfig:
    """Load bridge configuration.

    Args:
        config_path: Optional path to a JSON5 config file.
        env: Environment mapping (defaults to ``os.environ``). Passing either
            argument bypasses the process-wide cache.

    Returns:
        Validated configuration

    Raises:
        pydantic.ValidationError: If the merged configuration is invalid
    """
    global _cached_config

    use_cache = config_path is None and env is None
    if use_cache and _cached_config is not None:
        return _cached_config

    env = os.environ if env is None else env
    config_dict: dict[str, Any] = {}
    path = _resolve_config_path(config_path, env)

    if path and path.exists():
        try:
            config_dict = load_config_raw(path, env)
            logger.info(f"Loaded config from {path}")
        except Exception as exc:
            logger.warning(f"Failed to load config from {path}: {exc}")
    elif path:
        logger.warning(f"Config file not found: {path}")

    config_dict = _deep_merge(config_dict, env_overrides(env))
    config_obj = BridgeConfig(**config_dict)

    if use_cache:
        _cached_config = config_obj
    return config_obj


def invalidate_config_cache() -> None:
    """Invalidate the in-process config cache so the next load_config() re-reads."""
    global _cached_config
    _cached_config = None
