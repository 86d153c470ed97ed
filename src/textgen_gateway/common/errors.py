"""Exceptions and error payload helpers shared by the handlers."""
from __future__ import annotations
from typing import Any


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GatewayError):
    """A required request field is missing or invalid."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"Missing required field: {field}")
        self.field = field


class UpstreamError(GatewayError):
    """The generation provider failed (auth, quota, network, bad payload)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SamplingError(GatewayError):
    """Reading runtime counters failed."""


def error_body(message: str, **extra: Any) -> dict[str, Any]:
    """
    Build a JSON error payload.

    Args:
        message: Human-readable error message, stored under "error".
        extra: Additional top-level fields (e.g. timestamp, status).
    """
    body: dict[str, Any] = dict(extra)
    body["error"] = message
    return body
