import asyncio
import json
import httpx
import pytest
from core.llm_client import (
    AnthropicClient,
    OpenAIChatClient,
    build_llm_client,
    estimate_cost,
)
from model.impact import LLMOptions
from util.errors import LLMTimeoutError, LLMTransportError

OPTIONS = LLMOptions(model="gpt-4o", timeoutSeconds=5)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_openai_reply_and_usage():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": "gpt-4o-2024",
                "choices": [{"message": {"content": '{"impactScore": 1}'}}],
                "usage": {"prompt_tokens": 50, "completion_tokens": 10, "total_tokens": 60},
            },
        )

    llm = OpenAIChatClient("key", "https://llm.test/chat", client=_client(handler))
    resp = asyncio.run(llm.complete("sys", "user", OPTIONS))

    assert resp.content == '{"impactScore": 1}'
    assert resp.model == "gpt-4o-2024"
    assert resp.provider == "openai"
    assert resp.usage.totalTokens == 60
    assert seen["auth"] == "Bearer key"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]


def test_openai_http_error_is_transport_error():
    llm = OpenAIChatClient(
        "key", "https://llm.test/chat", client=_client(lambda r: httpx.Response(503))
    )
    with pytest.raises(LLMTransportError, match="HTTP 503"):
        asyncio.run(llm.complete("sys", "user", OPTIONS))


def test_empty_content_is_transport_error():
    llm = OpenAIChatClient(
        "key",
        "https://llm.test/chat",
        client=_client(lambda r: httpx.Response(200, json={"choices": []})),
    )
    with pytest.raises(LLMTransportError, match="no content"):
        asyncio.run(llm.complete("sys", "user", OPTIONS))


def test_deadline_raises_timeout():
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    llm = OpenAIChatClient("key", "https://llm.test/chat", client=_client(slow))
    with pytest.raises(LLMTimeoutError):
        asyncio.run(
            llm.complete("sys", "user", OPTIONS.model_copy(update={"timeoutSeconds": 0.05}))
        )


def test_anthropic_reply_sums_usage():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.headers["x-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "content": [{"type": "text", "text": "{}"}],
                "usage": {"input_tokens": 30, "output_tokens": 7},
            },
        )

    llm = AnthropicClient("secret", "https://llm.test/messages", client=_client(handler))
    resp = asyncio.run(llm.complete("sys", "user", OPTIONS))

    assert resp.provider == "anthropic"
    assert resp.model == "gpt-4o"
    assert resp.usage.totalTokens == 37
    assert seen["key"] == "secret"
    assert seen["body"]["system"] == "sys"


def test_build_llm_client():
    assert build_llm_client("openai", api_key="k", api_url="u").name == "openai"
    assert build_llm_client("anthropic", api_key="k", api_url="u").name == "anthropic"
    with pytest.raises(ValueError):
        build_llm_client("cohere", api_key="k", api_url="u")


def test_estimate_cost_uses_model_rates():
    est = estimate_cost("a" * 2000, "b" * 2000, "gpt-4", completion_tokens=1000)
    assert est.inputTokens == 1000
    assert est.totalTokens == 2000
    assert est.estimatedCost == pytest.approx(0.03 + 0.06)
    fallback = estimate_cost("x", "y", "unknown-model")
    assert fallback.model == "unknown-model"
