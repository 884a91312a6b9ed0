"""
Sample store — persistence for reference problem samples.

Rows live in Postgres (problem_samples); vectors live in Qdrant under the
same id. Samples are immutable once stored. Sync SQLAlchemy and Qdrant calls
run in worker threads so the event loop is never blocked.
"""

import asyncio
import json
import logging
import re
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from database.models import ProblemSample
from embeddings.generator import EmbeddingGenerator
from embeddings.qdrant_manager import QdrantManager
from generation.schemas import ReferenceSample, SampleStats

log = logging.getLogger(__name__)

# Capitalised technical terms: JavaScript, React, Node.js
TECH_TERM = re.compile(r"\b[A-Z][a-z]*(?:[A-Z][a-z]*)*(?:\.[a-z]+)?\b", re.ASCII)
# Hangul terms of 3-10 syllables: 클로저, 실행컨텍스트
KOREAN_TERM = re.compile(r"[가-힣]{3,}")
KOREAN_TERM_MAX = 10


def extract_keywords(domain: str, subdomain: Optional[str], question: str) -> List[str]:
    """Domain, subdomain and salient terms of the question, lower-cased, first occurrence order."""
    keywords = [domain]
    if subdomain:
        keywords.append(subdomain)
    keywords.extend(TECH_TERM.findall(question))
    keywords.extend(t for t in KOREAN_TERM.findall(question) if len(t) <= KOREAN_TERM_MAX)

    seen = set()
    result = []
    for kw in keywords:
        kw = kw.lower()
        if kw and kw not in seen:
            seen.add(kw)
            result.append(kw)
    return result


def _to_reference(row: ProblemSample, similarity: Optional[float] = None) -> ReferenceSample:
    return ReferenceSample(
        id=row.id,
        domain=row.domain,
        subdomain=row.subdomain,
        problem=row.problem or {},
        quality_score=row.quality_score if row.quality_score is not None else 8,
        keywords=list(row.keywords or []),
        origin=row.origin or "generated",
        generation=row.generation or 1,
        human_verified=bool(row.human_verified),
        similarity=similarity,
    )


class SampleStore:
    """
    Reads and writes ProblemSample rows and their vectors.

    Args:
        session_factory: SQLAlchemy sessionmaker
        qdrant:          QdrantManager for the problem_samples collection
        embedder:        EmbeddingGenerator used for stored samples and queries
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        qdrant: QdrantManager,
        embedder: EmbeddingGenerator,
    ):
        self.session_factory = session_factory
        self.qdrant = qdrant
        self.embedder = embedder

    # ─── Writes ────────────────────────────────────────────────────────────────

    def _insert(self, sample: ReferenceSample, embedding: List[float]) -> ReferenceSample:
        db = self.session_factory()
        try:
            row = ProblemSample(
                domain=sample.domain,
                subdomain=sample.subdomain,
                problem=sample.problem,
                quality_score=sample.quality_score,
                keywords=sample.keywords,
                origin=sample.origin,
                generation=sample.generation,
                human_verified=sample.human_verified,
                embedding_vector=embedding,
                embedding_model=self.embedder.model_name,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_reference(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _delete(self, sample_id: int) -> None:
        db = self.session_factory()
        try:
            row = db.get(ProblemSample, sample_id)
            if row is not None:
                db.delete(row)
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def store_problem_sample(self, sample: ReferenceSample) -> ReferenceSample:
        """
        Embed and persist one sample; keywords are derived when none are given.

        The row is removed again if the vector cannot be indexed, so a sample is
        either in both Postgres and Qdrant or in neither.

        Raises on embedding, storage or indexing failure.
        """
        if not sample.keywords:
            question = str(sample.problem.get("question", ""))
            sample = sample.model_copy(
                update={"keywords": extract_keywords(sample.domain, sample.subdomain, question)}
            )

        embedding = await self.embedder.embed(json.dumps(sample.problem, ensure_ascii=False))
        stored = await asyncio.to_thread(self._insert, sample, embedding)
        try:
            await asyncio.to_thread(
                self.qdrant.index_sample,
                stored.id,
                embedding,
                {
                    "sample_id": stored.id,
                    "domain": stored.domain,
                    "subdomain": stored.subdomain,
                    "origin": stored.origin,
                },
            )
        except Exception as e:
            log.error(f"[Samples] Vector indexing failed for sample {stored.id}, removing row: {e}")
            await asyncio.to_thread(self._delete, stored.id)
            raise
        return stored

    async def bulk_store_samples(self, samples: List[ReferenceSample]) -> List[ReferenceSample]:
        """Store samples one by one; failures are logged and skipped."""
        stored = []
        for sample in samples:
            try:
                stored.append(await self.store_problem_sample(sample))
                log.info(f"[Samples] Stored sample: {sample.domain}/{sample.subdomain or 'general'}")
            except Exception as e:
                log.error(f"[Samples] Failed to store sample {sample.domain}/{sample.subdomain or 'general'}: {e}")
        return stored

    # ─── Reads ─────────────────────────────────────────────────────────────────

    def _query(self, build) -> List[ReferenceSample]:
        db = self.session_factory()
        try:
            return [_to_reference(row) for row in build(db.query(ProblemSample)).all()]
        finally:
            db.close()

    async def keyword_search(self, tokens: List[str], domain: Optional[str] = None, limit: int = 10) -> List[ReferenceSample]:
        """Samples whose keyword array intersects any token."""
        if not tokens:
            return []

        def build(q):
            if domain:
                q = q.filter(ProblemSample.domain == domain)
            return q.filter(ProblemSample.keywords.overlap(tokens)).order_by(ProblemSample.id).limit(limit)

        return await asyncio.to_thread(self._query, build)

    async def vector_search(
        self,
        query: str,
        domain: Optional[str] = None,
        threshold: float = 0.7,
        limit: int = 10,
    ) -> List[ReferenceSample]:
        """
        Samples with cosine similarity >= threshold, most similar first.

        Raises when the embedding service fails; the retrieval engine degrades that to no results.
        """
        vector = await self.embedder.embed(query)
        hits = await asyncio.to_thread(
            self.qdrant.search_samples, vector, limit, threshold, domain
        )
        if not hits:
            return []

        scores = {h["sample_id"]: h["score"] for h in hits}
        rows = await asyncio.to_thread(
            self._query, lambda q: q.filter(ProblemSample.id.in_(list(scores)))
        )
        by_id = {r.id: r for r in rows}
        return [
            by_id[sid].model_copy(update={"similarity": score})
            for sid, score in scores.items()
            if sid in by_id
        ]

    async def samples_by_subdomain(self, domain: str, subdomain: str, limit: int = 2) -> List[ReferenceSample]:
        return await asyncio.to_thread(
            self._query,
            lambda q: q.filter(ProblemSample.domain == domain, ProblemSample.subdomain == subdomain)
            .order_by(ProblemSample.id)
            .limit(limit),
        )

    async def general_samples(self, domain: str, limit: int = 2) -> List[ReferenceSample]:
        """Domain-general samples (no subdomain)."""
        return await asyncio.to_thread(
            self._query,
            lambda q: q.filter(ProblemSample.domain == domain, ProblemSample.subdomain.is_(None))
            .order_by(ProblemSample.id)
            .limit(limit),
        )

    def _count(self, domain: Optional[str]) -> int:
        db = self.session_factory()
        try:
            q = db.query(ProblemSample)
            if domain:
                q = q.filter(ProblemSample.domain == domain)
            return q.count()
        finally:
            db.close()

    async def count_samples(self, domain: Optional[str] = None) -> int:
        return await asyncio.to_thread(self._count, domain)

    def _origin_counts(self) -> Dict[str, int]:
        db = self.session_factory()
        try:
            rows = (
                db.query(ProblemSample.origin, func.count(ProblemSample.id))
                .group_by(ProblemSample.origin)
                .all()
            )
            return {origin: count for origin, count in rows}
        finally:
            db.close()

    async def count_by_origin(self) -> SampleStats:
        """Human vs generated sample counts across the whole store."""
        return SampleStats.from_counts(await asyncio.to_thread(self._origin_counts))
