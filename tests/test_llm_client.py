import json

import httpx
import pytest

from legal_rag_server.core.errors import (
    InvalidUpstreamResponse,
    RateLimited,
    ServiceMisconfigured,
    ServiceUnavailable,
)
from legal_rag_server.llm.client import LLMClient, resolve_model

MESSAGES = [
    {"role": "system", "content": "You are easyAI."},
    {"role": "user", "content": "What is a writ of summons?"},
]


def _completion(text="A writ of summons is...", total_tokens=42):
    return {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 30, "completion_tokens": 12, "total_tokens": total_tokens},
    }


def _client(handler) -> LLMClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMClient(http, api_key="sk-test", base_url="https://api.test/v1")


def test_resolve_model_aliases():
    assert resolve_model("gpt-5") == "gpt-4o"
    assert resolve_model("gpt-5-nano") == "gpt-4o-mini"
    assert resolve_model("gpt-4-turbo") == "gpt-4-turbo-preview"
    assert resolve_model(None) == "gpt-4o-mini"
    assert resolve_model("llama-who") == "gpt-4o-mini"


@pytest.mark.asyncio
async def test_generate_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion())

    result = await _client(handler).generate(MESSAGES, "gpt-5")

    assert result.text == "A writ of summons is..."
    assert result.tokens_used == 42
    assert result.model_used == "gpt-4o"
    assert result.fell_back is False
    assert seen["url"] == "https://api.test/v1/chat/completions"
    assert seen["body"]["model"] == "gpt-4o"
    assert seen["body"]["messages"] == MESSAGES
    assert seen["body"]["max_completion_tokens"] == 2000
    assert "response_format" not in seen["body"]


@pytest.mark.asyncio
async def test_generate_passes_response_format():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion(text="{\"title\": \"Brief\"}"))

    result = await _client(handler).generate(MESSAGES, "gpt-4o", response_format={"type": "json_object"})

    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert json.loads(result.text) == {"title": "Brief"}


@pytest.mark.asyncio
async def test_model_not_found_falls_back_to_baseline():
    models = []

    def handler(request: httpx.Request) -> httpx.Response:
        model = json.loads(request.content)["model"]
        models.append(model)
        if model == "o1-preview":
            return httpx.Response(
                404,
                json={"error": {"message": "The model `o1-preview` does not exist", "code": "model_not_found"}},
            )
        return httpx.Response(200, json=_completion("fallback answer"))

    result = await _client(handler).generate(MESSAGES, "gpt-5.2")

    assert models == ["o1-preview", "gpt-4o-mini"]
    assert result.text == "fallback answer"
    assert result.model_used == "gpt-4o-mini"
    assert result.fell_back is True


@pytest.mark.asyncio
async def test_model_not_found_on_baseline_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "model not found"}})

    with pytest.raises(ServiceUnavailable):
        await _client(handler).generate(MESSAGES, None)


@pytest.mark.asyncio
async def test_rate_limited():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "Rate limit reached"}})

    with pytest.raises(RateLimited) as excinfo:
        await _client(handler).generate(MESSAGES)
    assert excinfo.value.kind == "ai_rate_limit"
    assert excinfo.value.status_code == 429


@pytest.mark.asyncio
async def test_bad_credentials_are_misconfiguration():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Incorrect API key"}})

    with pytest.raises(ServiceMisconfigured) as excinfo:
        await _client(handler).generate(MESSAGES)
    assert excinfo.value.kind == "ai_service_misconfigured"


@pytest.mark.asyncio
async def test_server_error_is_unavailable_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with pytest.raises(ServiceUnavailable, match="Status: 500"):
        await _client(handler).generate(MESSAGES)


@pytest.mark.asyncio
async def test_network_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ServiceUnavailable, match="Network error"):
        await _client(handler).generate(MESSAGES)


@pytest.mark.asyncio
async def test_empty_content_is_invalid_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": ""}}]})

    with pytest.raises(InvalidUpstreamResponse) as excinfo:
        await _client(handler).generate(MESSAGES)
    assert excinfo.value.kind == "ai_invalid_response"


@pytest.mark.asyncio
async def test_non_json_success_is_invalid_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(InvalidUpstreamResponse):
        await _client(handler).generate(MESSAGES)
