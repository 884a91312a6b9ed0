"""
SQLAlchemy models for the generation pipeline's persistent state.

- ProblemSample:  reference problems used as few-shot examples (never mutated after insert)
- GenerationCost: append-only token/cost ledger, one row per model call

Vectors for ProblemSample are indexed in Qdrant (problem_samples collection);
the embedding is also kept here so the index can be rebuilt.
"""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.sql import func

from database.database import Base


class ProblemSample(Base):
    """
    Reference problem sample.

    origin = "human" for curated seeds, "generated" for auto-seeded samples;
    generation = lineage depth of auto-generation (1 = generated from scratch).
    """
    __tablename__ = "problem_samples"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(50), nullable=False, index=True)       # 코딩, 영어, ...
    subdomain = Column(String(100), nullable=True, index=True)    # 프론트엔드, React, ... (NULL = domain-general)
    problem = Column(JSONB, nullable=False)                       # GeneratedProblem shape + metadata
    quality_score = Column(Float, nullable=False, default=8)
    keywords = Column(ARRAY(String), nullable=False, default=list)

    origin = Column(String(20), nullable=False, default="generated", index=True)
    generation = Column(Integer, nullable=False, default=1)
    human_verified = Column(Boolean, nullable=False, default=False)

    embedding_vector = Column(JSON, nullable=True)
    embedding_model = Column(String(100), nullable=True)   # text-embedding-3-small
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ProblemSample(id={self.id}, domain='{self.domain}', subdomain='{self.subdomain}', origin='{self.origin}')>"


class GenerationCost(Base):
    """One model call's token usage and computed dollar cost."""
    __tablename__ = "generation_costs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    stage = Column(String(50), nullable=False)          # extraction | design | generation | validation
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    cost_usd = Column(Float, nullable=False, default=0.0)
    model = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<GenerationCost(user_id='{self.user_id}', stage='{self.stage}', cost_usd={self.cost_usd})>"
