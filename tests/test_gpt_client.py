import asyncio

import httpx
import openai
import pytest

from conftest import fake_openai
from generation.errors import RateLimitedError
from generation.gpt_client import (
    DEFAULT_MAX_TOKENS,
    ModelGateway,
    RetryPolicy,
    extract_json,
    optimal_tokens,
)


def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError(
        "Rate limit reached",
        response=httpx.Response(429, request=request),
        body=None,
    )


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def gateway_with(script, sleeper=None):
    client = fake_openai(script)
    policy = RetryPolicy(max_attempts=3, sleep=sleeper or SleepRecorder())
    return ModelGateway(client, model="gpt-4o-mini", retry_policy=policy), client


def test_stage_token_ceilings():
    assert optimal_tokens("extraction") == 1000
    assert optimal_tokens("design") == 1500
    assert optimal_tokens("generation") == 3000
    assert optimal_tokens("validation") == 500
    assert optimal_tokens("other") == DEFAULT_MAX_TOKENS
    assert optimal_tokens(None) == DEFAULT_MAX_TOKENS


def test_generate_passes_budget_and_returns_usage():
    gateway, client = gateway_with(['{"problems": []}'])

    response = asyncio.run(gateway.generate(
        "system", "user", response_format="json_object", stage="generation"
    ))

    call = client.chat.completions.calls[0]
    assert call["max_tokens"] == 3000
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0] == {"role": "system", "content": "system"}
    assert response.content == '{"problems": []}'
    assert response.usage.input_tokens == 100
    assert response.usage.output_tokens == 50
    assert response.model == "gpt-4o-mini"


def test_explicit_max_tokens_overrides_stage():
    gateway, client = gateway_with(["ok"])
    asyncio.run(gateway.generate("s", "u", stage="design", max_tokens=42))
    assert client.chat.completions.calls[0]["max_tokens"] == 42
    assert "response_format" not in client.chat.completions.calls[0]


def test_rate_limit_retried_with_exponential_backoff():
    sleeper = SleepRecorder()
    gateway, client = gateway_with([rate_limit_error(), rate_limit_error(), "ok"], sleeper)

    response = asyncio.run(gateway.generate("s", "u", stage="generation"))

    assert response.content == "ok"
    assert sleeper.delays == [2.0, 4.0]
    assert len(client.chat.completions.calls) == 3


def test_rate_limit_exhausted_raises_distinct_error():
    sleeper = SleepRecorder()
    gateway, client = gateway_with([rate_limit_error()] * 3, sleeper)

    with pytest.raises(RateLimitedError) as exc:
        asyncio.run(gateway.generate("s", "u"))

    assert exc.value.attempts == 3
    assert sleeper.delays == [2.0, 4.0]
    assert len(client.chat.completions.calls) == 3


def test_other_errors_are_not_retried():
    sleeper = SleepRecorder()
    gateway, client = gateway_with([ValueError("bad payload"), "never used"], sleeper)

    with pytest.raises(ValueError):
        asyncio.run(gateway.generate("s", "u"))

    assert sleeper.delays == []
    assert len(client.chat.completions.calls) == 1


def test_extract_json_handles_fences_and_repair():
    assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json('Sure! {"problems": [{"question": "q",}]} hope this helps') == {"problems": [{"question": "q"}]}


def test_extract_json_without_object_raises():
    with pytest.raises(ValueError):
        extract_json("no json here")
