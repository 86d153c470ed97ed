"""Service configuration read once at process start."""
from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

import yaml

from textgen_gateway import __version__

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"

# field name -> environment variable
ENV_VARS = {
    "gemini_api_key": "GEMINI_API_KEY",
    "environment": "APP_ENV",
    "version": "APP_VERSION",
    "default_model": "GEMINI_MODEL",
    "gemini_base_url": "GEMINI_BASE_URL",
    "request_timeout": "GEMINI_TIMEOUT",
    "memory_threshold": "HEALTH_MEMORY_THRESHOLD",
    "log_level": "LOG_LEVEL",
    "host": "HOST",
    "port": "PORT",
}


@dataclass(frozen=True)
class Settings:
    """Immutable configuration injected into every handler."""

    gemini_api_key: str | None = None
    environment: str = "development"
    version: str = __version__
    default_model: str = DEFAULT_MODEL
    gemini_base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 60.0
    memory_threshold: int = 90
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def api_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Settings":
        """Build settings from a mapping of field names, coercing types."""
        known = {f.name: f for f in fields(cls)}
        unknown = set(values) - set(known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return replace(cls(), **{name: _coerce(name, value) for name, value in values.items()})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Create settings from environment variables.

        Environment variables:
        - GEMINI_API_KEY: provider credential (presence checked by /health)
        - APP_ENV: deployment environment label
        - APP_VERSION: version label reported by /health
        - GEMINI_MODEL: model used when a request names none
        - GEMINI_BASE_URL: provider API root
        - GEMINI_TIMEOUT: provider request timeout in seconds
        - HEALTH_MEMORY_THRESHOLD: memory percentage above which /health fails
        - LOG_LEVEL, HOST, PORT: server settings
        """
        return cls.from_mapping(_env_values(environ))

    @classmethod
    def from_yaml(cls, path: str, environ: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from a YAML file; environment variables take precedence."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        merged = {**data, **_env_values(environ)}
        return cls.from_mapping(merged)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Load settings from GATEWAY_CONFIG if set, else from the environment only."""
    env = os.environ if environ is None else environ
    path = env.get("GATEWAY_CONFIG")
    if path:
        return Settings.from_yaml(path, env)
    return Settings.from_env(env)


def _env_values(environ: Mapping[str, str] | None) -> dict[str, str]:
    env = os.environ if environ is None else environ
    values = {}
    for name, var in ENV_VARS.items():
        raw = env.get(var)
        # empty variables behave as unset
        if raw is not None and raw.strip() != "":
            values[name] = raw
    return values


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        if name == "gemini_api_key":
            return None
        raise ValueError(f"Configuration value {name} must not be empty")
    try:
        if name == "request_timeout":
            result = float(value)
            if result <= 0:
                raise ValueError("must be positive")
            return result
        if name in ("memory_threshold", "port"):
            return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r} ({e})") from e
    text = str(value).strip()
    if name == "gemini_api_key":
        return text or None
    return text
