"""
Runtime settings for the generation pipeline.

Read once from the environment at process start (see study_api.py) and
passed to every component that needs them.
"""

import os
from typing import Literal

from pydantic import BaseModel, Field

ValidatorMode = Literal["off", "sampled", "full"]


class PipelineSettings(BaseModel):
    gpt_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"

    # Independent validator policy
    validator_mode: ValidatorMode = "off"
    validator_sample_rate: float = Field(0.2, ge=0.0, le=1.0)
    validator_low_score: float = 8

    # Retry policy for the model gateway
    max_attempts: int = Field(3, ge=1)

    # Preprocessing
    chunking_threshold: int = 5000
    chunk_size: int = 1000

    # Result cache
    cache_ttl_days: int = 7
    samples_version: str = "v1.0.0"

    # Retrieval
    rag_limit: int = 5
    rag_threshold: float = 0.7

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            gpt_model=os.getenv("GPT_MODEL", "gpt-4o-mini"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            validator_mode=os.getenv("VALIDATOR_MODE", "off"),
            validator_sample_rate=float(os.getenv("VALIDATOR_SAMPLE_RATE", "0.2")),
            validator_low_score=float(os.getenv("VALIDATOR_LOW_SCORE", "8")),
            max_attempts=int(os.getenv("GPT_MAX_ATTEMPTS", "3")),
            chunking_threshold=int(os.getenv("CHUNKING_THRESHOLD", "5000")),
            cache_ttl_days=int(os.getenv("PROBLEM_CACHE_TTL_DAYS", "7")),
            samples_version=os.getenv("RAG_SAMPLES_VERSION", "v1.0.0"),
        )
