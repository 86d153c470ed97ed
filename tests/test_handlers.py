from __future__ import annotations

import asyncio
import json

import pytest

from conftest import MB, FakeProvider, FakeSampler
from textgen_gateway.common.config import Settings
from textgen_gateway.common.errors import UpstreamError
from textgen_gateway.serve.handlers import (
    GenerationHandler,
    HealthHandler,
    MetricsHandler,
    parse_generation_request,
)


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"{}",
        b"not json",
        b"[]",
        b'"prompt"',
        json.dumps({"prompt": ""}).encode(),
        json.dumps({"prompt": "   \n\t"}).encode(),
        json.dumps({"prompt": None}).encode(),
        json.dumps({"prompt": 42}).encode(),
        json.dumps({"model": "gemini-1.5-pro"}).encode(),
        b"[" * 200000,
        b"{\"prompt\": " * 100000,
    ],
)
def test_invalid_prompt_rejected_without_calling_provider(settings: Settings, body: bytes) -> None:
    provider = FakeProvider()
    resp = asyncio.run(GenerationHandler(settings, provider).handle(body))
    assert resp.status_code == 400
    assert "prompt" in resp.body["error"]
    assert provider.calls == []


def test_non_string_model_uses_default() -> None:
    req = parse_generation_request(b'{"prompt": "hi", "model": 3}', "gemini-2.0-flash")
    assert req.model == "gemini-2.0-flash"


@pytest.mark.parametrize("model", [3, None, [], {"name": "x"}, "", "gemini-1.5-pro", "../../v1/files?x="])
@pytest.mark.parametrize("error", [None, UpstreamError("quota exceeded")])
def test_valid_prompt_is_never_400(settings: Settings, model, error) -> None:
    provider = FakeProvider(error=error)
    body = json.dumps({"prompt": "test", "model": model}).encode()
    resp = asyncio.run(GenerationHandler(settings, provider).handle(body))
    assert resp.status_code in (200, 500)
    assert ("text" in resp.body) != ("error" in resp.body)
    assert len(provider.calls) == 1


def test_blank_model_falls_back_to_default() -> None:
    req = parse_generation_request(b'{"prompt": " hi ", "model": "  "}', "gemini-2.0-flash")
    assert req.model == "gemini-2.0-flash"
    assert req.prompt == " hi "


def test_success_has_text_only(settings: Settings, provider: FakeProvider) -> None:
    resp = asyncio.run(GenerationHandler(settings, provider).handle(b'{"prompt": "hello"}'))
    assert resp.status_code == 200
    assert resp.body["text"] == "Hello test"
    assert "error" not in resp.body


def test_upstream_error_is_500(settings: Settings, failing_provider: FakeProvider) -> None:
    resp = asyncio.run(GenerationHandler(settings, failing_provider).handle(b'{"prompt": "hello"}'))
    assert resp.status_code == 500
    assert resp.body == {"error": "Gemini API returned 429: quota exceeded"}


def test_unexpected_provider_exception_is_500(settings: Settings) -> None:
    provider = FakeProvider(error=RuntimeError("boom"))
    resp = asyncio.run(GenerationHandler(settings, provider).handle(b'{"prompt": "hello"}'))
    assert resp.status_code == 500
    assert "boom" in resp.body["error"]
    assert "text" not in resp.body


@pytest.mark.parametrize(
    "api_key, used, expected",
    [
        ("key", 100 * MB, "healthy"),
        ("key", 900 * MB, "healthy"),
        ("key", 906 * MB, "unhealthy"),
        (None, 100 * MB, "unhealthy"),
        (None, 990 * MB, "unhealthy"),
    ],
)
def test_health_verdict_matches_checks(api_key, used, expected) -> None:
    settings = Settings(gemini_api_key=api_key)
    resp = HealthHandler(settings, FakeSampler(heap_used=used, heap_total=1000 * MB)).handle()
    body = resp.body
    assert body["status"] == expected
    assert resp.status_code == (200 if expected == "healthy" else 503)
    checks = body["checks"]
    assert (checks["api"] and checks["memory"]["percentage"] <= 90) == (expected == "healthy")


def test_health_threshold_is_configurable() -> None:
    settings = Settings(gemini_api_key="key", memory_threshold=50)
    resp = HealthHandler(settings, FakeSampler(heap_used=600 * MB, heap_total=1000 * MB)).handle()
    assert resp.status_code == 503
    assert resp.body["checks"]["memory"]["percentage"] == 60


def test_health_percentage_is_clamped_integer(settings: Settings) -> None:
    resp = HealthHandler(settings, FakeSampler(heap_used=1200 * MB, heap_total=1000 * MB)).handle()
    pct = resp.body["checks"]["memory"]["percentage"]
    assert isinstance(pct, int)
    assert pct == 100


def test_health_zero_total_reports_sampling_failure(settings: Settings) -> None:
    resp = HealthHandler(settings, FakeSampler(heap_total=0)).handle()
    assert resp.status_code == 503
    assert resp.body["status"] == "unhealthy"
    assert "error" in resp.body
    assert "checks" not in resp.body


def test_health_shape_is_stable(settings: Settings) -> None:
    handler = HealthHandler(settings, FakeSampler())
    first, second = handler.handle().body, handler.handle().body
    assert first.keys() == second.keys()
    assert first["checks"].keys() == second["checks"].keys()


def test_metrics_converts_units(settings: Settings) -> None:
    resp = MetricsHandler(settings, FakeSampler()).handle()
    assert resp.status_code == 200
    body = resp.body
    assert body["memory"] == {
        "rssMB": 150,
        "heapTotalMB": 1000,
        "heapUsedMB": 100,
        "externalMB": 2,
        "arrayBuffersMB": 0,
    }
    # 1_500_500us -> 1500.5ms rounds up, 250_499us -> 250.499ms rounds down
    assert body["cpu"] == {"userMs": 1501, "systemMs": 250}
    assert body["process"] == {"pid": 4242, "platform": "linux", "runtimeVersion": "3.12.1"}
    assert body["uptime"] == 12.5
    assert body["environment"] == "test"
    assert "status" not in body


def test_metrics_values_are_non_negative_ints(settings: Settings) -> None:
    body = MetricsHandler(settings, FakeSampler()).handle().body
    for section in ("memory", "cpu"):
        for value in body[section].values():
            assert isinstance(value, int)
            assert value >= 0


def test_metrics_shape_is_stable(settings: Settings) -> None:
    handler = MetricsHandler(settings, FakeSampler())
    first, second = handler.handle().body, handler.handle().body
    assert first.keys() == second.keys()
    for key in ("memory", "cpu", "process"):
        assert first[key].keys() == second[key].keys()
