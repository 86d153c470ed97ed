"""FastAPI service proxying text generation to Gemini.

Endpoints:
- POST /generate  { "prompt": "...", "model": "..." }
- GET /health
- GET /metrics

Each is also mounted under /api.
"""
from __future__ import annotations
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from textgen_gateway import __version__
from textgen_gateway.common.config import Settings, load_settings
from textgen_gateway.common.logging_setup import setup_logging
from textgen_gateway.common.runtime import PsutilSampler, RuntimeSampler
from textgen_gateway.common.schema import HandlerResponse
from textgen_gateway.serve.handlers import GenerationHandler, HealthHandler, MetricsHandler
from textgen_gateway.serve.provider import GeminiProvider, GenerationProvider

LOGGER = logging.getLogger("textgen.serve.app")


def _json(response: HandlerResponse) -> JSONResponse:
    return JSONResponse(
        content=response.body,
        status_code=response.status_code,
        headers={"Cache-Control": "no-store"},
    )


def create_app(
    settings: Settings | None = None,
    provider: GenerationProvider | None = None,
    sampler: RuntimeSampler | None = None,
) -> FastAPI:
    """
    Build the application with its three handlers.

    Args:
        settings: Configuration; read from the environment when omitted.
        provider: Generation backend; GeminiProvider when omitted.
        sampler: Runtime sampler; PsutilSampler when omitted.
    """
    settings = settings or load_settings()
    provider = provider or GeminiProvider(settings)
    sampler = sampler or PsutilSampler()

    app = FastAPI(title="textgen-gateway", version=__version__)
    app.state.settings = settings
    app.state.generation = GenerationHandler(settings, provider)
    app.state.health = HealthHandler(settings, sampler)
    app.state.metrics = MetricsHandler(settings, sampler)

    @app.on_event("startup")
    def _warn_missing_credentials() -> None:
        """Warn early when the provider credential is absent."""
        if not settings.api_configured:
            LOGGER.warning("GEMINI_API_KEY is not set; /generate will fail and /health reports unhealthy")
        LOGGER.info(
            "Starting textgen-gateway %s (env=%s, default model=%s)",
            settings.version,
            settings.environment,
            settings.default_model,
        )

    async def generate(request: Request) -> JSONResponse:
        body = await request.body()
        return _json(await app.state.generation.handle(body))

    def health() -> JSONResponse:
        return _json(app.state.health.handle())

    def metrics() -> JSONResponse:
        return _json(app.state.metrics.handle())

    for prefix in ("", "/api"):
        app.add_api_route(f"{prefix}/generate", generate, methods=["POST"])
        app.add_api_route(f"{prefix}/health", health, methods=["GET"])
        app.add_api_route(f"{prefix}/metrics", metrics, methods=["GET"])

    return app


setup_logging()
app = create_app()
