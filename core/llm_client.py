# core/llm_client.py
import asyncio
import logging
import time
from typing import Any, Dict, Optional
import httpx
from model.impact import CostEstimate, LLMOptions, LLMResponse, TokenUsage
from util.errors import LLMTimeoutError, LLMTransportError
from util.functions import estimate_tokens
from util.timing import timed

logger = logging.getLogger(__name__)

# USD per 1K tokens (input, output)
MODEL_COSTS: Dict[str, tuple[float, float]] = {
    "gpt-4o": (0.005, 0.015),
    "gpt-4": (0.03, 0.06),
    "gpt-3.5-turbo": (0.001, 0.002),
}


async def _post_json(
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    JSON POST bounded by `timeout` seconds end to end. The in-flight request is
    cancelled when the deadline passes. Raises LLMTimeoutError/LLMTransportError.
    """

    async def _send(c: httpx.AsyncClient) -> Dict[str, Any]:
        r = await c.post(url, headers=headers, json=payload)
        r.raise_for_status()
        try:
            return r.json()
        except ValueError:
            return {}

    try:
        if client is not None:
            return await asyncio.wait_for(_send(client), timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as c:
            return await asyncio.wait_for(_send(c), timeout=timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise LLMTimeoutError(f"LLM request timed out after {timeout:.0f}s") from e
    except httpx.HTTPStatusError as e:
        raise LLMTransportError(
            f"LLM provider returned HTTP {e.response.status_code}"
        ) from e
    except httpx.HTTPError as e:
        raise LLMTransportError(f"LLM request failed: {type(e).__name__}") from e


def estimate_cost(
    system: str, user: str, model: str, completion_tokens: int = 500
) -> CostEstimate:
    input_tokens = estimate_tokens(system + user)
    in_rate, out_rate = MODEL_COSTS.get(model, MODEL_COSTS["gpt-4o"])
    cost = (input_tokens / 1000) * in_rate + (completion_tokens / 1000) * out_rate
    return CostEstimate(
        inputTokens=input_tokens,
        outputTokens=completion_tokens,
        totalTokens=input_tokens + completion_tokens,
        estimatedCost=cost,
        model=model,
    )


class OpenAIChatClient:
    """OpenAI-compatible /chat/completions endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.openai.com/v1/chat/completions",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._client = client

    async def complete(self, system: str, user: str, options: LLMOptions) -> LLMResponse:
        headers = {
            "authorization": f"Bearer {self._api_key}",
            "content-type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": options.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": options.temperature,
            "max_tokens": options.maxTokens,
        }
        if options.jsonMode:
            payload["response_format"] = {"type": "json_object"}

        t0 = time.perf_counter()
        with timed(logger, "ai.complete", provider=self.name, model=options.model):
            data = await _post_json(
                self._api_url, headers, payload, options.timeoutSeconds, self._client
            )

        text = ""
        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            text = message.get("content") or ""
        if not text:
            raise LLMTransportError("LLM returned no content")

        usage = data.get("usage") or {}
        return LLMResponse(
            content=text,
            model=data.get("model") or options.model,
            provider=self.name,
            usage=TokenUsage(
                promptTokens=int(usage.get("prompt_tokens") or 0),
                completionTokens=int(usage.get("completion_tokens") or 0),
                totalTokens=int(usage.get("total_tokens") or 0),
            ),
            processingTimeMs=int((time.perf_counter() - t0) * 1000),
        )


class AnthropicClient:
    """Anthropic /v1/messages endpoint. JSON mode is enforced through the prompt."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.anthropic.com/v1/messages",
        version: str = "2023-06-01",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._version = version
        self._client = client

    async def complete(self, system: str, user: str, options: LLMOptions) -> LLMResponse:
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": self._version,
            "content-type": "application/json",
        }
        payload = {
            "model": options.model,
            "max_tokens": options.maxTokens,
            "system": system,
            "messages": [{"role": "user", "content": user}],
            "temperature": options.temperature,
        }
        t0 = time.perf_counter()
        with timed(logger, "ai.complete", provider=self.name, model=options.model):
            data = await _post_json(
                self._api_url, headers, payload, options.timeoutSeconds, self._client
            )

        text = ""
        content = data.get("content") or []
        if content and isinstance(content, list):
            node = content[0]
            if isinstance(node, dict) and node.get("type") == "text":
                text = node.get("text") or ""
        if not text:
            raise LLMTransportError("LLM returned no content")

        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("input_tokens") or 0)
        completion_tokens = int(usage.get("output_tokens") or 0)
        return LLMResponse(
            content=text,
            model=data.get("model") or options.model,
            provider=self.name,
            usage=TokenUsage(
                promptTokens=prompt_tokens,
                completionTokens=completion_tokens,
                totalTokens=prompt_tokens + completion_tokens,
            ),
            processingTimeMs=int((time.perf_counter() - t0) * 1000),
        )


def build_llm_client(
    provider: str,
    *,
    api_key: str,
    api_url: str,
    anthropic_version: str = "2023-06-01",
):
    if provider == "anthropic":
        return AnthropicClient(api_key, api_url, anthropic_version)
    if provider == "openai":
        return OpenAIChatClient(api_key, api_url)
    raise ValueError(f"Unsupported LLM provider: {provider}")
