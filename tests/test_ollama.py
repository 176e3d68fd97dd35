from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from core.errors import InferenceFailed
from plugins.inference.ollama import OllamaProvider


def _provider(handler) -> OllamaProvider:
    return OllamaProvider("http://ollama.test:11434/", transport=httpx.MockTransport(handler))


async def _call(provider: OllamaProvider, coro_factory):
    try:
        return await coro_factory(provider)
    finally:
        await provider.close()


def test_generate_sends_non_streaming_request() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": "llama3"}]})
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"model": "llama3", "response": "  A summary. ", "done": True})

    async def scenario(provider: OllamaProvider) -> str:
        await provider.ping()
        return await provider.generate("llama3", "Summarize: hi")

    provider = _provider(handler)
    assert provider.host == "http://ollama.test:11434"
    assert asyncio.run(_call(provider, scenario)) == "A summary."
    assert seen == [{"model": "llama3", "prompt": "Summarize: hi", "stream": False}]


def test_unreachable_server() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    with pytest.raises(InferenceFailed, match="not reachable"):
        asyncio.run(_call(_provider(handler), lambda p: p.ping()))

    with pytest.raises(InferenceFailed, match="not reachable"):
        asyncio.run(_call(_provider(handler), lambda p: p.generate("llama3", "x")))


def test_http_error_carries_server_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "model 'nope' not found"})

    with pytest.raises(InferenceFailed, match="model 'nope' not found"):
        asyncio.run(_call(_provider(handler), lambda p: p.generate("nope", "x")))


@pytest.mark.parametrize(
    "payload",
    [{"response": ""}, {"response": "   "}, {"error": "out of memory"}],
)
def test_empty_or_error_payload(payload: dict) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(InferenceFailed):
        asyncio.run(_call(_provider(handler), lambda p: p.generate("llama3", "x")))


def test_invalid_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy error</html>")

    with pytest.raises(InferenceFailed, match="invalid JSON"):
        asyncio.run(_call(_provider(handler), lambda p: p.generate("llama3", "x")))
