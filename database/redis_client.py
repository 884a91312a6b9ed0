"""
Redis client for the generated-problem cache.
"""

import os

import redis.asyncio as aioredis

# ─── Config ────────────────────────────────────────────────────────────────────

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


def create_redis(url: str = REDIS_URL) -> aioredis.Redis:
    """Create the process-wide async Redis connection (called once at application start)."""
    return aioredis.from_url(url, decode_responses=True)
