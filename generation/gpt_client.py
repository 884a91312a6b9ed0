"""
Model gateway: the single choke point for chat-completion calls.

Used by:
  - pipeline.py       (extraction, design, generation)
  - validator.py      (independent validation)
  - rag/auto_generate.py (sample bootstrap)

Per-stage token ceilings bound the cost of every call; rate-limit responses
are retried with exponential backoff by a RetryPolicy that can be unit-tested
without real delays.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

import json_repair
import openai
from openai import AsyncOpenAI

from generation.errors import RateLimitedError
from generation.schemas import ModelResponse, TokenUsage

log = logging.getLogger("generation.pipeline")

DEFAULT_MODEL = "gpt-4o-mini"

# ── Token ceilings per stage ───────────────────────────────────────────────────
STAGE_MAX_TOKENS = {
    "extraction": 1000,   # concepts only
    "design": 1500,       # structure only
    "generation": 3000,   # final problems
    "validation": 500,    # validator verdict
}
DEFAULT_MAX_TOKENS = 2000


def optimal_tokens(stage: Optional[str]) -> int:
    """Token ceiling for a pipeline stage (unknown stages get the default)."""
    return STAGE_MAX_TOKENS.get(stage or "", DEFAULT_MAX_TOKENS)


def exponential_backoff(attempt: int) -> float:
    """2s, 4s, 8s ..."""
    return float(2 ** attempt)


@dataclass
class RetryPolicy:
    """
    Bounded retry for rate-limited calls.

    Args:
        max_attempts: total attempts including the first one
        backoff:      attempt number (1-based) → delay in seconds
        sleep:        awaitable sleep; tests inject a recorder instead of asyncio.sleep
    """
    max_attempts: int = 3
    backoff: Callable[[int], float] = exponential_backoff
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    async def run(self, call: Callable[[], Awaitable[ModelResponse]], label: str = "") -> ModelResponse:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except openai.RateLimitError as e:
                if attempt >= self.max_attempts:
                    log.error(f"[Gateway] Rate limit persisted after {attempt} attempts ({label})")
                    raise RateLimitedError(attempts=attempt) from e
                delay = self.backoff(attempt)
                log.warning(
                    f"[Gateway] Rate limit hit (attempt {attempt}/{self.max_attempts}, {label}), "
                    f"retrying in {delay:.0f}s..."
                )
                await self.sleep(delay)
        # max_attempts >= 1, so the loop always returns or raises
        raise RateLimitedError(attempts=self.max_attempts)


class ModelGateway:
    """Wraps an AsyncOpenAI client with stage budgets and the retry policy."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        response_format: Optional[str] = None,
        stage: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """
        Call Chat Completions and return the message text with token usage.

        Args:
            system_prompt:   System turn
            user_prompt:     User turn (the actual instruction)
            temperature:     Sampling temperature
            response_format: "json_object" to force JSON output
            stage:           extraction | design | generation | validation | other
            max_tokens:      Overrides the stage ceiling

        Raises:
            RateLimitedError: rate limit persisted through every retry
            openai.OpenAIError: any other API failure, raised immediately
        """
        budget = max_tokens or optimal_tokens(stage)

        async def _call() -> ModelResponse:
            kwargs = {}
            if response_format:
                kwargs["response_format"] = {"type": response_format}
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=budget,
                **kwargs,
            )
            usage = response.usage
            return ModelResponse(
                content=response.choices[0].message.content or "",
                usage=TokenUsage(
                    input_tokens=(usage.prompt_tokens or 0) if usage else 0,
                    output_tokens=(usage.completion_tokens or 0) if usage else 0,
                ),
                model=self.model,
            )

        return await self.retry_policy.run(_call, label=stage or "other")


# ── JSON extraction ───────────────────────────────────────────────────────────

def extract_json(raw: str) -> dict:
    """Extract + repair the JSON object in a model response."""
    raw = (raw or "").strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw, flags=re.MULTILINE)
    raw = re.sub(r"\s*```$", "", raw, flags=re.MULTILINE)
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start == -1 or end == 0:
        raise ValueError(f"No JSON object in model response: {raw[:300]}")
    data = json_repair.loads(raw[start:end])
    if not isinstance(data, dict):
        raise ValueError(f"Model response is not a JSON object: {raw[:300]}")
    return data
