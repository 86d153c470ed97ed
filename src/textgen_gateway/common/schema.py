"""Pydantic models and dataclasses for request/response types."""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class HandlerResponse:
    """Status code and JSON body produced by a handler."""
    status_code: int
    body: dict[str, Any]


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    model: str


@dataclass(frozen=True)
class GenerationSuccess:
    text: str


@dataclass(frozen=True)
class GenerationFailure:
    error_message: str


GenerationResult = Union[GenerationSuccess, GenerationFailure]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class GenerateOut(_WireModel):
    text: str
    model: str


class MemoryCheck(_WireModel):
    used_mb: int = Field(alias="usedMB", ge=0)
    total_mb: int = Field(alias="totalMB", ge=0)
    percentage: int = Field(ge=0, le=100)


class HealthChecks(_WireModel):
    api: bool
    memory: MemoryCheck

    def is_healthy(self, memory_threshold: int) -> bool:
        return self.api and self.memory.percentage <= memory_threshold


class HealthStatus(_WireModel):
    status: Literal["healthy", "unhealthy"]
    timestamp: str
    uptime: float
    environment: str
    version: str
    checks: HealthChecks

    @classmethod
    def from_checks(
        cls,
        checks: HealthChecks,
        *,
        memory_threshold: int,
        uptime: float,
        environment: str,
        version: str,
    ) -> "HealthStatus":
        """Build a status whose verdict is derived from the checks."""
        return cls(
            status="healthy" if checks.is_healthy(memory_threshold) else "unhealthy",
            timestamp=utc_timestamp(),
            uptime=uptime,
            environment=environment,
            version=version,
            checks=checks,
        )

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


class MemoryMetrics(_WireModel):
    rss_mb: int = Field(alias="rssMB", ge=0)
    heap_total_mb: int = Field(alias="heapTotalMB", ge=0)
    heap_used_mb: int = Field(alias="heapUsedMB", ge=0)
    external_mb: int = Field(alias="externalMB", ge=0)
    array_buffers_mb: int = Field(alias="arrayBuffersMB", ge=0)


class CpuMetrics(_WireModel):
    user_ms: int = Field(alias="userMs", ge=0)
    system_ms: int = Field(alias="systemMs", ge=0)


class ProcessMetrics(_WireModel):
    pid: int
    platform: str
    runtime_version: str = Field(alias="runtimeVersion")


class MetricsSnapshot(_WireModel):
    timestamp: str
    uptime: float
    memory: MemoryMetrics
    cpu: CpuMetrics
    process: ProcessMetrics
    environment: str
