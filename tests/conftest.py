from __future__ import annotations

import pytest

from textgen_gateway.common.config import Settings
from textgen_gateway.common.errors import SamplingError, UpstreamError
from textgen_gateway.common.runtime import CpuSample, MemorySample, ProcessInfo

MB = 1024 * 1024


class FakeSampler:
    """Sampler returning fixed counters; set fail=True to raise on every read."""

    def __init__(
        self,
        heap_used: int = 100 * MB,
        heap_total: int = 1000 * MB,
        rss: int = 150 * MB,
        cpu: CpuSample = CpuSample(user_us=1_500_500, system_us=250_499),
        fail: bool = False,
    ) -> None:
        self.heap_used = heap_used
        self.heap_total = heap_total
        self.rss = rss
        self._cpu = cpu
        self.fail = fail

    def _check(self) -> None:
        if self.fail:
            raise SamplingError("counters unavailable")

    def memory(self) -> MemorySample:
        self._check()
        return MemorySample(
            rss=self.rss,
            heap_total=self.heap_total,
            heap_used=self.heap_used,
            external=2 * MB,
            array_buffers=0,
        )

    def cpu(self) -> CpuSample:
        self._check()
        return self._cpu

    def uptime(self) -> float:
        self._check()
        return 12.5

    def process_info(self) -> ProcessInfo:
        self._check()
        return ProcessInfo(pid=4242, platform="linux", runtime_version="3.12.1")


class FakeProvider:
    """Records calls; returns `text` or raises `error`."""

    def __init__(self, text: str = "Hello test", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, model: str) -> str:
        self.calls.append((prompt, model))
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def settings() -> Settings:
    return Settings(gemini_api_key="test_api_key", environment="test", version="9.9.9")


@pytest.fixture
def sampler() -> FakeSampler:
    return FakeSampler()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def failing_provider() -> FakeProvider:
    return FakeProvider(error=UpstreamError("Gemini API returned 429: quota exceeded", status_code=429))
