"""
Auto-seeder — bootstrap reference samples the store is missing.

When retrieval finds fewer than `min_samples` for a technology, the model is
asked for the shortfall; only problems that rate themselves >= 8 are kept,
stored as origin="generated", generation=1, human_verified=False.
"""

import logging
from typing import Any, Dict, List

from generation.gpt_client import ModelGateway, extract_json
from generation.prompts import (
    BASE_SYSTEM_PROMPT,
    COMMON_RULES,
    SAMPLE_GENERATION_RULES,
    get_domain_prompt_function,
    get_sample_request,
)
from generation.schemas import ReferenceSample, SeedReport, SeedTarget
from rag.retrieval import RetrievalEngine
from rag.sample_store import SampleStore

log = logging.getLogger("generation.pipeline")

MIN_SAMPLE_QUALITY = 8
SEARCH_LIMIT = 5
SAMPLE_TEMPERATURE = 0.3


def _self_score(problem: Dict[str, Any]) -> float:
    critique = problem.get("self_critique") or {}
    try:
        return float(critique.get("quality_score") or 0)
    except (TypeError, ValueError):
        return 0.0


def passes_sample_quality(problem: Dict[str, Any]) -> bool:
    return _self_score(problem) >= MIN_SAMPLE_QUALITY


class AutoSeeder:
    """Fills gaps in the reference sample store using the model gateway."""

    def __init__(self, gateway: ModelGateway, retrieval: RetrievalEngine, store: SampleStore):
        self.gateway = gateway
        self.retrieval = retrieval
        self.store = store

    async def _request_samples(self, tech: str, domain: str, count: int) -> List[Dict[str, Any]]:
        """One model call for `count` example problems. Raises on any failure."""
        build = get_domain_prompt_function(domain)
        system_prompt = "\n\n".join([
            BASE_SYSTEM_PROMPT,
            COMMON_RULES,
            SAMPLE_GENERATION_RULES.format(tech=tech),
        ])
        response = await self.gateway.generate(
            system_prompt=system_prompt,
            user_prompt=build(get_sample_request(tech, count), ""),
            temperature=SAMPLE_TEMPERATURE,
            response_format="json_object",
            stage="generation",
        )
        problems = extract_json(response.content).get("problems") or []
        return [p for p in problems if isinstance(p, dict)]

    async def _persist(self, tech: str, domain: str, problems: List[Dict[str, Any]]) -> List[ReferenceSample]:
        saved = []
        for problem in problems:
            sample = ReferenceSample(
                domain=domain,
                subdomain=tech,
                problem=problem,
                quality_score=_self_score(problem) or MIN_SAMPLE_QUALITY,
                origin="generated",
                generation=1,
                human_verified=False,
            )
            try:
                saved.append(await self.store.store_problem_sample(sample))
                log.info(f"[AutoSeed]   Saved sample for {tech} (generated, gen 1)")
            except Exception as e:
                log.error(f"[AutoSeed]   Failed to save sample for {tech}: {e}")
        return saved

    async def get_or_create_samples(self, tech: str, domain: str, min_samples: int = 3) -> List[ReferenceSample]:
        """
        Existing samples for `tech`, topped up by generation when fewer than `min_samples`.

        Generation failures are logged; whatever existing samples were found is returned.
        """
        samples = await self.retrieval.search_similar_problems(tech, domain=domain, limit=SEARCH_LIMIT)
        log.info(f"[AutoSeed] {tech} ({domain}): found {len(samples)} existing sample(s)")

        if len(samples) >= min_samples:
            return samples[:min_samples]

        needed = min_samples - len(samples)
        log.info(f"[AutoSeed]   Insufficient samples ({len(samples)}/{min_samples}), generating {needed}")
        try:
            generated = await self._request_samples(tech, domain, needed)
        except Exception as e:
            log.error(f"[AutoSeed]   Sample generation failed for {tech}: {e}")
            return samples[:min_samples]

        validated = [p for p in generated if passes_sample_quality(p)]
        log.info(f"[AutoSeed]   Generated {len(generated)}, {len(validated)} passed quality >= {MIN_SAMPLE_QUALITY}")

        saved = await self._persist(tech, domain, validated)
        return (samples + saved)[:min_samples]

    async def bulk_auto_generate(self, targets: List[SeedTarget]) -> List[SeedReport]:
        """Offline seeding: generate and store samples per target, sequentially, never aborting the batch."""
        reports = []
        for target in targets:
            log.info(f"[AutoSeed] Bulk generating: {target.tech} ({target.count} samples)")
            try:
                generated = await self._request_samples(target.tech, target.domain, target.count)
                validated = [p for p in generated if passes_sample_quality(p)]
                saved = await self._persist(target.tech, target.domain, validated)
                reports.append(SeedReport(tech=target.tech, generated=len(generated), saved=len(saved)))
                log.info(f"[AutoSeed]   {len(saved)}/{len(generated)} saved")
            except Exception as e:
                log.error(f"[AutoSeed]   Failed to generate {target.tech}: {e}")
                reports.append(SeedReport(tech=target.tech, generated=0, saved=0, error=str(e)))
        return reports
