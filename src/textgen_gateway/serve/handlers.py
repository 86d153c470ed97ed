"""Request handlers for /generate, /health and /metrics.

Each handler returns a HandlerResponse and never raises: every failure is
turned into a JSON body with a stable status code.
"""
from __future__ import annotations
import json
import logging

from textgen_gateway.common.config import Settings
from textgen_gateway.common.errors import UpstreamError, ValidationError, error_body
from textgen_gateway.common.runtime import RuntimeSampler, bytes_to_mb, percentage, us_to_ms
from textgen_gateway.common.schema import (
    CpuMetrics,
    GenerateOut,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    HandlerResponse,
    HealthChecks,
    HealthStatus,
    MemoryCheck,
    MemoryMetrics,
    MetricsSnapshot,
    ProcessMetrics,
    utc_timestamp,
)
from textgen_gateway.serve.provider import GenerationProvider

LOGGER = logging.getLogger("textgen.serve.handlers")


def parse_generation_request(raw_body: bytes | str | None, default_model: str) -> GenerationRequest:
    """
    Validate a /generate body and apply the default model.

    Whitespace-only prompts are rejected like empty ones. The prompt is
    forwarded as sent; only the emptiness check uses the stripped value.
    A missing, blank or non-string model falls back to the default.
    """
    try:
        data = json.loads(raw_body) if raw_body else None
    except (ValueError, RecursionError):
        data = None
    if not isinstance(data, dict):
        raise ValidationError("prompt", "Request body must be a JSON object with a 'prompt' field")

    prompt = data.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("prompt", "Missing required field: prompt")

    model = data.get("model")
    if not isinstance(model, str) or not model.strip():
        if model is not None:
            LOGGER.info("Ignoring model %r; using %s", model, default_model)
        model = default_model

    return GenerationRequest(prompt=prompt, model=model.strip())


class GenerationHandler:
    def __init__(self, settings: Settings, provider: GenerationProvider) -> None:
        self._settings = settings
        self._provider = provider

    async def handle(self, raw_body: bytes | str | None) -> HandlerResponse:
        try:
            request = parse_generation_request(raw_body, self._settings.default_model)
        except ValidationError as e:
            LOGGER.info("Rejected generate request: %s", e.message)
            return HandlerResponse(400, error_body(e.message))

        result = await self._generate(request)
        if isinstance(result, GenerationFailure):
            return HandlerResponse(500, error_body(result.error_message))
        return HandlerResponse(200, GenerateOut(text=result.text, model=request.model).to_json())

    async def _generate(self, request: GenerationRequest) -> GenerationResult:
        try:
            text = await self._provider.generate(request.prompt, request.model)
        except UpstreamError as e:
            LOGGER.error("Generation with %s failed: %s", request.model, e.message)
            return GenerationFailure(e.message)
        except Exception as e:
            LOGGER.exception("Unexpected generation failure with %s", request.model)
            return GenerationFailure(f"Generation failed: {e}")
        return GenerationSuccess(text)


class HealthHandler:
    def __init__(self, settings: Settings, sampler: RuntimeSampler) -> None:
        self._settings = settings
        self._sampler = sampler

    def handle(self) -> HandlerResponse:
        try:
            health = self.check()
        except Exception as e:
            LOGGER.exception("Health check failed")
            return HandlerResponse(
                503,
                error_body(str(e) or type(e).__name__, status="unhealthy", timestamp=utc_timestamp()),
            )

        if not health.healthy:
            LOGGER.warning(
                "Service unhealthy: api=%s memory=%s%%",
                health.checks.api,
                health.checks.memory.percentage,
            )
        return HandlerResponse(200 if health.healthy else 503, health.to_json())

    def check(self) -> HealthStatus:
        mem = self._sampler.memory()
        checks = HealthChecks(
            api=self._settings.api_configured,
            memory=MemoryCheck(
                used_mb=bytes_to_mb(mem.heap_used),
                total_mb=bytes_to_mb(mem.heap_total),
                percentage=percentage(mem.heap_used, mem.heap_total),
            ),
        )
        return HealthStatus.from_checks(
            checks,
            memory_threshold=self._settings.memory_threshold,
            uptime=self._sampler.uptime(),
            environment=self._settings.environment,
            version=self._settings.version,
        )


class MetricsHandler:
    def __init__(self, settings: Settings, sampler: RuntimeSampler) -> None:
        self._settings = settings
        self._sampler = sampler

    def handle(self) -> HandlerResponse:
        try:
            snapshot = self.snapshot()
        except Exception:
            LOGGER.exception("Metrics collection failed")
            return HandlerResponse(500, error_body("Failed to collect metrics", timestamp=utc_timestamp()))
        return HandlerResponse(200, snapshot.to_json())

    def snapshot(self) -> MetricsSnapshot:
        mem = self._sampler.memory()
        cpu = self._sampler.cpu()
        proc = self._sampler.process_info()
        return MetricsSnapshot(
            timestamp=utc_timestamp(),
            uptime=self._sampler.uptime(),
            memory=MemoryMetrics(
                rss_mb=bytes_to_mb(mem.rss),
                heap_total_mb=bytes_to_mb(mem.heap_total),
                heap_used_mb=bytes_to_mb(mem.heap_used),
                external_mb=bytes_to_mb(mem.external),
                array_buffers_mb=bytes_to_mb(mem.array_buffers),
            ),
            cpu=CpuMetrics(user_ms=us_to_ms(cpu.user_us), system_ms=us_to_ms(cpu.system_us)),
            process=ProcessMetrics(pid=proc.pid, platform=proc.platform, runtime_version=proc.runtime_version),
            environment=self._settings.environment,
        )