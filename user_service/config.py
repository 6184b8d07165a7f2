"""Configuration management for the user service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .health import DEFAULT_MEMORY_LIMIT_BYTES

CONFIG_ENV_VAR = "USER_SERVICE_CONFIG"
PRODUCTION = "production"
DEFAULT_TRUSTED_PROXIES: Tuple[str, ...] = ("127.0.0.1",)


class ConfigError(ValueError):
    """Raised when a configuration value cannot be interpreted."""


def _split_list(value: object) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ConfigError(f"Expected a list or comma separated string, got {value!r}")
    return tuple(item.strip() for item in items if item.strip())


def _as_int(name: str, value: object, *, minimum: int = 0) -> int:
    try:
        parsed = int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"Invalid integer value {value!r} for {name}") from exc
    if parsed < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {parsed}")
    return parsed


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service."""

    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = PRODUCTION
    allowed_origins: Tuple[str, ...] = ("*",)
    rate_limit_max: int = 100
    rate_limit_window: int = 15 * 60
    max_body_bytes: int = 10 * 1024
    trusted_proxies: Tuple[str, ...] = DEFAULT_TRUSTED_PROXIES
    memory_limit_bytes: int = DEFAULT_MEMORY_LIMIT_BYTES

    @property
    def expose_errors(self) -> bool:
        return self.environment != PRODUCTION

    @property
    def rate_limit_enabled(self) -> bool:
        return self.rate_limit_max > 0

    @staticmethod
    def from_dict(data: Mapping[str, object], base: Optional["Settings"] = None) -> "Settings":
        """Apply raw configuration values on top of ``base``."""

        settings = base or Settings()
        updates: Dict[str, object] = {}

        if data.get("host") is not None:
            updates["host"] = str(data["host"]).strip()
        if data.get("port") is not None:
            port = _as_int("port", data["port"], minimum=1)
            if port > 65535:
                raise ConfigError(f"port must be at most 65535, got {port}")
            updates["port"] = port
        if data.get("environment") is not None:
            updates["environment"] = str(data["environment"]).strip().lower() or PRODUCTION
        if data.get("allowed_origins") is not None:
            updates["allowed_origins"] = _split_list(data["allowed_origins"]) or ("*",)
        if data.get("trusted_proxies") is not None:
            updates["trusted_proxies"] = _split_list(data["trusted_proxies"]) or DEFAULT_TRUSTED_PROXIES
        if data.get("max_body_bytes") is not None:
            updates["max_body_bytes"] = _as_int("max_body_bytes", data["max_body_bytes"], minimum=1)
        if data.get("memory_limit_bytes") is not None:
            updates["memory_limit_bytes"] = _as_int(
                "memory_limit_bytes", data["memory_limit_bytes"], minimum=1
            )

        rate_limit = data.get("rate_limit")
        if rate_limit is not None:
            if not isinstance(rate_limit, Mapping):
                raise ConfigError("rate_limit must be a mapping with max_requests/window_seconds")
            if rate_limit.get("max_requests") is not None:
                updates["rate_limit_max"] = _as_int("rate_limit.max_requests", rate_limit["max_requests"])
            if rate_limit.get("window_seconds") is not None:
                updates["rate_limit_window"] = _as_int(
                    "rate_limit.window_seconds", rate_limit["window_seconds"], minimum=1
                )

        return replace(settings, **updates)


_ENV_KEYS = {
    "USER_SERVICE_HOST": "host",
    "USER_SERVICE_PORT": "port",
    "USER_SERVICE_ENV": "environment",
    "USER_SERVICE_ALLOWED_ORIGINS": "allowed_origins",
    "USER_SERVICE_TRUSTED_PROXIES": "trusted_proxies",
    "USER_SERVICE_MAX_BODY_BYTES": "max_body_bytes",
    "USER_SERVICE_MEMORY_LIMIT": "memory_limit_bytes",
}


def _settings_from_env(environ: Mapping[str, str]) -> Dict[str, object]:
    data: Dict[str, object] = {}
    for env_name, key in _ENV_KEYS.items():
        value = environ.get(env_name)
        if value is not None and value.strip():
            data[key] = value

    rate_limit: Dict[str, object] = {}
    if environ.get("USER_SERVICE_RATE_LIMIT_MAX", "").strip():
        rate_limit["max_requests"] = environ["USER_SERVICE_RATE_LIMIT_MAX"]
    if environ.get("USER_SERVICE_RATE_LIMIT_WINDOW", "").strip():
        rate_limit["window_seconds"] = environ["USER_SERVICE_RATE_LIMIT_WINDOW"]
    if rate_limit:
        data["rate_limit"] = rate_limit
    return data


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load raw settings from a YAML file."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")
    return raw


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional configuration file path."""
    if not env_value or not env_value.strip():
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment.

    Environment variables take precedence over values read from the file.
    """

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get(CONFIG_ENV_VAR))

    settings = Settings()
    if path is not None:
        settings = Settings.from_dict(load_config_file(path), settings)
    return Settings.from_dict(_settings_from_env(env), settings)


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigError",
    "DEFAULT_TRUSTED_PROXIES",
    "Settings",
    "load_config_file",
    "load_settings",
    "resolve_config_path",
]
