"""
Hybrid search over reference problem samples.

  1. Keyword search  (exact keyword-array match)
  2. Vector search   (cosine similarity, Qdrant)
  3. RRF             (Reciprocal Rank Fusion, keyword hits weighted 2x)
  4. Hierarchical fallback when fewer than 3 results
     e.g. "React" → 프론트엔드 samples → 코딩 general samples
  5. Provenance rebalancing: at most 60% human, 40% generated, human first

Sub-search failures degrade to an empty list for that sub-search only.
"""

import asyncio
import json
import logging
import math
from typing import Dict, List, Optional

from generation.schemas import ReferenceSample
from rag.hierarchy import find_parent_category
from rag.sample_store import SampleStore

log = logging.getLogger("generation.pipeline")

# ─── Config ────────────────────────────────────────────────────────────────────

RRF_K = 60
KEYWORD_WEIGHT = 2
VECTOR_WEIGHT = 1
SUB_SEARCH_LIMIT = 10
MIN_RESULTS = 3
FALLBACK_LIMIT = 2
HUMAN_SHARE = 0.6
GENERATED_SHARE = 0.4

NO_EXAMPLES = "No similar examples found. Generate based on general domain knowledge."


def _key(sample: ReferenceSample):
    return sample.id if sample.id is not None else id(sample)


def hybrid_merge(
    keyword_results: List[ReferenceSample],
    vector_results: List[ReferenceSample],
    limit: int,
) -> List[ReferenceSample]:
    """
    Reciprocal Rank Fusion: score(id) += weight / (rank + 60) for each list the id appears in.

    Ties keep first-seen order (keyword list before vector list).
    """
    scores: Dict[object, float] = {}
    items: Dict[object, ReferenceSample] = {}

    for weight, results in ((KEYWORD_WEIGHT, keyword_results), (VECTOR_WEIGHT, vector_results)):
        for rank, sample in enumerate(results):
            k = _key(sample)
            scores[k] = scores.get(k, 0.0) + weight / (rank + RRF_K)
            if k not in items:
                items[k] = sample
            elif items[k].similarity is None and sample.similarity is not None:
                items[k] = items[k].model_copy(update={"similarity": sample.similarity})

    ranked = sorted(scores, key=lambda k: scores[k], reverse=True)
    return [items[k] for k in ranked][:limit]


def prioritize_human_samples(samples: List[ReferenceSample], limit: int) -> List[ReferenceSample]:
    """Keep at most ceil(limit*0.6) human and floor(limit*0.4) generated samples, human first."""
    human = [s for s in samples if s.origin == "human"]
    generated = [s for s in samples if s.origin != "human"]
    human_target = math.ceil(limit * HUMAN_SHARE)
    generated_target = math.floor(limit * GENERATED_SHARE)
    return (human[:human_target] + generated[:generated_target])[:limit]


def format_examples_for_prompt(examples: List[ReferenceSample]) -> str:
    """Render retrieved samples as numbered JSON few-shot examples."""
    if not examples:
        return NO_EXAMPLES

    blocks = []
    for idx, ex in enumerate(examples, start=1):
        header = f"Example {idx}"
        if ex.similarity:
            header += f" (Similarity: {ex.similarity * 100:.1f}%)"
        blocks.append(f"{header}:\n{json.dumps(ex.problem, ensure_ascii=False, indent=2)}")
    return "\n\n---\n\n".join(blocks)


class RetrievalEngine:
    """Hybrid keyword + vector retrieval with hierarchical fallback."""

    def __init__(self, store: SampleStore):
        self.store = store

    async def _keyword_search(self, query: str, domain: Optional[str]) -> List[ReferenceSample]:
        tokens = [t for t in query.lower().split() if t]
        try:
            return await self.store.keyword_search(tokens, domain, SUB_SEARCH_LIMIT)
        except Exception as e:
            log.warning(f"[RAG] Keyword search failed: {e}")
            return []

    async def _vector_search(self, query: str, domain: Optional[str], threshold: float) -> List[ReferenceSample]:
        try:
            return await self.store.vector_search(query, domain, threshold, SUB_SEARCH_LIMIT)
        except Exception as e:
            log.warning(f"[RAG] Vector search failed: {e}")
            return []

    async def _hierarchical_fallback(self, query: str, domain: str) -> List[ReferenceSample]:
        results: List[ReferenceSample] = []

        parent = find_parent_category(query, domain)
        if parent:
            try:
                results.extend(await self.store.samples_by_subdomain(domain, parent, FALLBACK_LIMIT))
            except Exception as e:
                log.warning(f"[RAG] Fallback to {domain}/{parent} failed: {e}")

        if len(results) < FALLBACK_LIMIT:
            try:
                results.extend(await self.store.general_samples(domain, FALLBACK_LIMIT))
            except Exception as e:
                log.warning(f"[RAG] Fallback to {domain} general samples failed: {e}")

        return results

    async def search_similar_problems(
        self,
        query: str,
        domain: Optional[str] = None,
        limit: int = 5,
        threshold: float = 0.7,
    ) -> List[ReferenceSample]:
        """
        Hybrid search for few-shot examples.

        Raises:
            ValueError: query is empty, or domain is given but not a non-empty string
        """
        if not isinstance(query, str) or not query.strip():
            raise ValueError("query must be a non-empty string")
        if domain is not None and (not isinstance(domain, str) or not domain.strip()):
            raise ValueError("domain must be a non-empty string when provided")

        log.info(f"[RAG] Searching for: '{query}' in domain: {domain or 'all'}")

        keyword_results, vector_results = await asyncio.gather(
            self._keyword_search(query, domain),
            self._vector_search(query, domain, threshold),
        )
        log.info(f"[RAG]   keyword={len(keyword_results)}  vector={len(vector_results)}")

        merged = hybrid_merge(keyword_results, vector_results, limit)

        if len(merged) < MIN_RESULTS and domain:
            log.info(f"[RAG]   Only {len(merged)} result(s), trying hierarchical fallback")
            seen = {_key(s) for s in merged}
            for sample in await self._hierarchical_fallback(query, domain):
                if _key(sample) not in seen:
                    seen.add(_key(sample))
                    merged.append(sample)
            merged = merged[:limit]

        merged = prioritize_human_samples(merged, limit)
        log.info(f"[RAG]   Returning {len(merged)} sample(s)")
        return merged
