"""Gemini generateContent client used by the /generate proxy."""
from __future__ import annotations
import logging
import re
import time
from typing import Any, Callable, Protocol

import httpx

from textgen_gateway.common.config import Settings
from textgen_gateway.common.errors import UpstreamError

LOGGER = logging.getLogger("textgen.serve.provider")

# a single path segment such as gemini-2.0-flash or gemini-1.5-pro-002
MODEL_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class GenerationProvider(Protocol):
    async def generate(self, prompt: str, model: str) -> str:
        """Return generated text or raise UpstreamError."""
        ...


class GeminiProvider:
    """Calls POST /v1beta/models/{model}:generateContent on the Gemini API."""

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory

    async def generate(self, prompt: str, model: str) -> str:
        api_key = self._settings.gemini_api_key
        if not api_key:
            raise UpstreamError("GEMINI_API_KEY is not configured")
        if not MODEL_NAME.fullmatch(model):
            raise UpstreamError(f"Invalid model name: {model!r}")

        url = f"{self._settings.gemini_base_url.rstrip('/')}/v1beta/models/{model}:generateContent"
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        start = time.time()
        try:
            async with self._client_factory(timeout=self._settings.request_timeout) as client:
                r = await client.post(url, headers=headers, json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise UpstreamError(
                f"Gemini API returned {status}: {_error_detail(e.response)}",
                status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Gemini API request timed out after {self._settings.request_timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Gemini API request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("Gemini API returned invalid JSON") from e

        latency = int((time.time() - start) * 1000)
        text = extract_text(data)
        LOGGER.info("Gemini %s responded in %sms (%s chars)", model, latency, len(text))
        return text


def extract_text(data: Any) -> str:
    """
    Pull the generated text out of a generateContent response.

    Joins every text part of the first candidate. Raises UpstreamError if the
    prompt was blocked or no text came back.
    """
    if not isinstance(data, dict):
        raise UpstreamError("Malformed Gemini response")

    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason")
        if reason:
            raise UpstreamError(f"Prompt blocked by Gemini: {reason}")
        raise UpstreamError("Gemini returned no candidates")

    try:
        parts = candidates[0].get("content", {}).get("parts", [])
        text = "".join(p.get("text", "") for p in parts)
    except (AttributeError, TypeError) as e:
        raise UpstreamError("Malformed Gemini response") from e

    if not text:
        reason = candidates[0].get("finishReason", "unknown")
        raise UpstreamError(f"Gemini returned no text (finishReason={reason})")
    return text


def _error_detail(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.reason_phrase or "unknown error"
