"""Ollama inference provider -- calls the Ollama HTTP API via httpx.

No SDK dependency. ``GET /api/tags`` serves as the reachability check,
``POST /api/generate`` (non-streaming) produces the text.
"""

from __future__ import annotations

import logging

import httpx

from core.errors import InferenceFailed
from core.models.tasks import DEFAULT_OLLAMA_HOST

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Inference provider for one Ollama server.

    Implements the InferenceProvider protocol.
    """

    def __init__(
        self,
        host: str = DEFAULT_OLLAMA_HOST,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = host.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._host,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def host(self) -> str:
        return self._host

    async def ping(self) -> None:
        """Raise InferenceFailed unless the server answers ``/api/tags``."""
        try:
            response = await self._client.get("/api/tags")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise InferenceFailed(f"Ollama server is not reachable: {_describe(exc)}") from exc

    async def generate(self, model: str, prompt: str) -> str:
        """Send one non-streaming generate request and return the text."""
        body = {
            "model": model,
            "prompt": prompt,
            "stream": False,
        }

        logger.debug("Ollama generate: model=%s host=%s prompt=%d chars", model, self._host, len(prompt))
        try:
            response = await self._client.post("/api/generate", json=body)
        except httpx.TransportError as exc:
            raise InferenceFailed(f"Ollama server is not reachable: {_describe(exc)}") from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            raise InferenceFailed(
                f"Ollama returned HTTP {response.status_code} for model {model}: {detail}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise InferenceFailed(f"Ollama returned invalid JSON: {exc}") from exc

        if data.get("error"):
            raise InferenceFailed(f"Ollama error: {data['error']}")

        text = str(data.get("response") or "").strip()
        if not text:
            raise InferenceFailed(f"Ollama returned an empty response for model {model}")
        return text

    async def close(self) -> None:
        await self._client.aclose()


def _describe(exc: httpx.HTTPError) -> str:
    return str(exc) or type(exc).__name__


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()[:200] or response.reason_phrase
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return response.reason_phrase
