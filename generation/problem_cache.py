"""
Result cache for generated problem sets.

Key   = sha256 over every request field that can change model output
        (+ the reference-samples version, so reseeding invalidates results)
Value = Redis hash {problems: <json>, created_at: <iso timestamp>}
TTL   = 7 days; an expired entry is deleted on read and reported as a miss.

Writes always upsert (last writer wins): two concurrent misses on the same
key both generate and both write, which is accepted.
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import redis
import redis.asyncio as aioredis

from generation.schemas import CacheEntry, GeneratedProblem, GenerationRequest

log = logging.getLogger(__name__)

CACHE_PREFIX = "problem_cache:v2"
DEFAULT_TTL_DAYS = 7
DEFAULT_SAMPLES_VERSION = "v1.0.0"


# ─── Key helpers ───────────────────────────────────────────────────────────────

def generate_cache_key(request: GenerationRequest, samples_version: str = DEFAULT_SAMPLES_VERSION) -> str:
    """
    Deterministic key for a request.

    category selects the domain prompt and retrieval domain, so it is part of
    the key; user_id and anything else outside this list never affect it.
    """
    cache_data = json.dumps(
        {
            "category": request.category.strip(),
            "sourceData": (request.source_data or "").strip(),
            "aiPrompt": (request.ai_prompt or "").strip(),
            "problemCount": request.problem_count,
            "difficulty": request.difficulty,
            "fillBlankRatio": request.fill_blank_ratio,
            "subjectiveType": request.subjective_type,
            "gradingStrictness": request.grading_strictness,
            "generationMode": request.generation_mode,
            "complexity": request.complexity or "simple",
            "samplesVersion": samples_version,
        },
        ensure_ascii=False,
        sort_keys=True,
    )
    digest = hashlib.sha256(cache_data.encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}:{digest}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Cache operations ──────────────────────────────────────────────────────────

class ProblemCache:
    """Async Redis-backed cache of accepted problem sets."""

    def __init__(
        self,
        client: aioredis.Redis,
        ttl_days: int = DEFAULT_TTL_DAYS,
        samples_version: str = DEFAULT_SAMPLES_VERSION,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.ttl = timedelta(days=ttl_days)
        self.samples_version = samples_version
        self.clock = clock

    def key_for(self, request: GenerationRequest) -> str:
        return generate_cache_key(request, self.samples_version)

    async def get_cached_problems(self, cache_key: str) -> Optional[List[GeneratedProblem]]:
        """Return cached problems, or None on miss / expiry / unreadable entry / read error."""
        try:
            raw = await self.client.hgetall(cache_key)
            if not raw:
                return None

            entry = CacheEntry(
                cache_key=cache_key,
                problems=json.loads(raw["problems"]),
                created_at=raw["created_at"],
            )
            if self.clock() - entry.created_at > self.ttl:
                await self.client.delete(cache_key)
                log.info(f"[Cache] Expired entry removed: {cache_key}")
                return None

            return entry.problems
        except (redis.RedisError, KeyError, ValueError, TypeError) as e:
            log.error(f"[Cache] Cache retrieval error: {e}")
            return None

    async def set_cached_problems(self, cache_key: str, problems: List[GeneratedProblem]) -> None:
        """Upsert a problem set; storage errors are logged, never raised."""
        entry = CacheEntry(cache_key=cache_key, problems=problems, created_at=self.clock())
        try:
            payload = json.dumps(
                [p.model_dump(mode="json") for p in entry.problems], ensure_ascii=False
            )
            await self.client.hset(
                cache_key,
                mapping={"problems": payload, "created_at": entry.created_at.isoformat()},
            )
            # Backstop so abandoned keys disappear even if never read again
            await self.client.expire(cache_key, int(self.ttl.total_seconds()))
        except redis.RedisError as e:
            log.error(f"[Cache] Cache storage error: {e}")
