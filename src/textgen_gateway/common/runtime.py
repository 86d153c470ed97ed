"""Process introspection and unit conversion helpers."""
from __future__ import annotations
import os
import platform
import sys
import time
import tracemalloc
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

import psutil

from textgen_gateway.common.errors import SamplingError

BYTES_PER_MB = 1024 * 1024
US_PER_MS = 1000
US_PER_SECOND = 1_000_000

# cgroup v2 first, then v1
CGROUP_MEMORY_LIMIT_FILES = (
    "/sys/fs/cgroup/memory.max",
    "/sys/fs/cgroup/memory/memory.limit_in_bytes",
)


@dataclass(frozen=True)
class MemorySample:
    """Memory counters in bytes."""
    rss: int
    heap_total: int
    heap_used: int
    external: int
    array_buffers: int


@dataclass(frozen=True)
class CpuSample:
    """Cumulative process CPU time in microseconds, unrounded."""
    user_us: int | Decimal
    system_us: int | Decimal


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    platform: str
    runtime_version: str


class RuntimeSampler(Protocol):
    def memory(self) -> MemorySample: ...

    def cpu(self) -> CpuSample: ...

    def uptime(self) -> float: ...

    def process_info(self) -> ProcessInfo: ...


class PsutilSampler:
    """
    Sample the current process via psutil.

    heap_used is the process resident set size. heap_total is the container
    memory limit when a cgroup sets one below host RAM, otherwise the host's
    physical memory, so the health percentage is relative to whichever of the
    two actually bounds this process. array_buffers reports tracemalloc's
    traced bytes, which is 0 unless tracing was started.
    """

    def __init__(
        self,
        process: psutil.Process | None = None,
        limit_files: tuple[str, ...] = CGROUP_MEMORY_LIMIT_FILES,
    ) -> None:
        self._process = process or psutil.Process(os.getpid())
        self._limit_files = limit_files

    def memory(self) -> MemorySample:
        try:
            info = self._process.memory_info()
            total = psutil.virtual_memory().total
        except psutil.Error as e:
            raise SamplingError(f"Cannot read memory usage: {e}") from e
        limit = cgroup_memory_limit(self._limit_files)
        if limit is not None:
            total = min(total, limit)
        traced = tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else 0
        return MemorySample(
            rss=info.rss,
            heap_total=total,
            heap_used=info.rss,
            external=getattr(info, "shared", 0),
            array_buffers=traced,
        )

    def cpu(self) -> CpuSample:
        try:
            times = self._process.cpu_times()
        except psutil.Error as e:
            raise SamplingError(f"Cannot read CPU times: {e}") from e
        return CpuSample(
            user_us=Decimal(str(times.user)) * US_PER_SECOND,
            system_us=Decimal(str(times.system)) * US_PER_SECOND,
        )

    def uptime(self) -> float:
        try:
            started = self._process.create_time()
        except psutil.Error as e:
            raise SamplingError(f"Cannot read process start time: {e}") from e
        return max(0.0, time.time() - started)

    def process_info(self) -> ProcessInfo:
        return ProcessInfo(
            pid=self._process.pid,
            platform=sys.platform,
            runtime_version=platform.python_version(),
        )


def cgroup_memory_limit(paths: tuple[str, ...] = CGROUP_MEMORY_LIMIT_FILES) -> int | None:
    """
    Return the memory limit of the current cgroup in bytes, or None.

    "max" (v2) means unlimited. Missing or unreadable files are skipped.
    """
    for path in paths:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read().strip()
        except OSError:
            continue
        if raw == "max":
            return None
        try:
            limit = int(raw)
        except ValueError:
            continue
        if limit > 0:
            return limit
    return None


def round_half_away(value: float | int | Decimal) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def bytes_to_mb(count: int) -> int:
    return round_half_away(Decimal(count) / BYTES_PER_MB)


def us_to_ms(count: int | Decimal) -> int:
    return round_half_away(Decimal(count) / US_PER_MS)


def percentage(used: int, total: int) -> int:
    """Whole-number share of used over total, clamped to [0, 100]."""
    if total <= 0:
        raise ValueError(f"total must be positive, got {total}")
    pct = round_half_away(Decimal(used) * 100 / Decimal(total))
    return min(100, max(0, pct))
