"""
Problem generation pipeline — the orchestrator.

One request flows through:

    select pipeline → (preprocess)? → parallel{extract?, retrieve?}
                    → (design)? → generate → filter → done

Pipelines:
  simple  (ai_only, user_data)      one generation call, no design stage
  medium  (hybrid, short material)  design + generation
  full    (hybrid, long material)   concept extraction + design + generation

Extraction and retrieval failures degrade to empty results; design and
generation failures are fatal for the request. Results are cached by the
generation-affecting fields of the request.
"""

import asyncio
import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import ValidationError

from generation.chunking import preprocess_source
from generation.config import PipelineSettings
from generation.cost_tracker import CostTracker, calculate_cost
from generation.errors import GenerationFailedError, RateLimitedError
from generation.gpt_client import ModelGateway, extract_json
from generation.input_security import secure_prompt_wrapper
from generation.problem_cache import ProblemCache
from generation.prompts import (
    BASE_SYSTEM_PROMPT,
    COMMON_RULES,
    complexity_instructions,
    get_design_prompt,
    get_domain_prompt_function,
    get_extraction_prompt,
    get_generation_prompt,
    type_mix_instructions,
)
from generation.quality_filter import QualityFilterChain, parse_candidates
from generation.schemas import (
    ConceptRecord,
    GenerationMetadata,
    GenerationRequest,
    GenerationResult,
    ModelResponse,
    PipelineType,
    ProblemDesign,
    ReferenceSample,
    UsageSummary,
)
from rag.retrieval import RetrievalEngine, format_examples_for_prompt

log = logging.getLogger("generation.pipeline")

# ─── Config ────────────────────────────────────────────────────────────────────

OVERSHOOT_FACTOR = 1.2          # generate 20% extra to absorb filter attrition
FULL_PIPELINE_THRESHOLD = 5000  # hybrid material at/above this length → full
RAG_QUERY_PREVIEW = 500
PLACEHOLDER_CONTEXT = 200

EXTRACTION_TEMPERATURE = 0.3
DESIGN_TEMPERATURE = 0.5
GENERATION_TEMPERATURE = 0.7


def select_pipeline(generation_mode: str, source_length: int = 0) -> PipelineType:
    """Pure function of the request: which pipeline handles it."""
    if generation_mode in ("ai_only", "user_data"):
        return "simple"
    if source_length >= FULL_PIPELINE_THRESHOLD:
        return "full"
    return "medium"


def generation_target(problem_count: int) -> int:
    return math.ceil(problem_count * OVERSHOOT_FACTOR)


# ─── Response parsing ──────────────────────────────────────────────────────────

def _strip_fences(content: str) -> str:
    text = (content or "").strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    return re.sub(r"\s*```$", "", text).strip()


def parse_concepts(content: str) -> List[ConceptRecord]:
    """
    Concepts from an extraction response.

    A response that fails to parse gets one repair attempt: cut after the last
    complete object ('"}') and close the array. Anything else yields no concepts.
    """
    text = _strip_fences(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        log.warning(f"[Extraction] JSON parsing failed ({len(text)} chars), attempting repair")
        cut = text.rfind('"}')
        if cut <= 0:
            return []
        try:
            data = json.loads(text[:cut + 2] + "]}")
        except json.JSONDecodeError:
            log.warning("[Extraction] Could not repair JSON, continuing without concepts")
            return []

    raw = data.get("concepts") if isinstance(data, dict) else None
    concepts = []
    for item in raw or []:
        try:
            concepts.append(ConceptRecord.model_validate(item))
        except ValidationError:
            continue
    return concepts


def parse_designs(content: str) -> List[ProblemDesign]:
    data = extract_json(content)
    designs = []
    for item in data.get("designs") or []:
        try:
            designs.append(ProblemDesign.model_validate(item))
        except ValidationError:
            continue
    return designs


# ─── Prompt assembly ───────────────────────────────────────────────────────────

def build_user_request(request: GenerationRequest, source: Optional[str], target: int) -> str:
    """The user-request block placed inside the domain prompt."""
    if source and request.generation_mode in ("user_data", "hybrid"):
        return (
            f"Based on the following user-provided learning material, "
            f"generate {target} {request.difficulty} problems.\n\n"
            f"{secure_prompt_wrapper(source)}\n\n"
            f"Focus ONLY on concepts from the provided material. "
            f"Do NOT generate problems on unrelated topics."
        )
    return request.ai_prompt or f"Generate {target} problems for {request.category}"


def build_retrieval_query(request: GenerationRequest, source: Optional[str]) -> str:
    if source and request.generation_mode == "hybrid":
        return f"{request.category} {source[:RAG_QUERY_PREVIEW]}"
    return request.ai_prompt or request.category


def placeholder_concept(request: GenerationRequest, source: Optional[str]) -> ConceptRecord:
    """Stand-in concept when extraction produced nothing (or did not run)."""
    if source:
        return ConceptRecord(
            concept=f"Concept from user material ({request.category})",
            context=source[:PLACEHOLDER_CONTEXT] + "...",
            importance=5,
        )
    topic = request.ai_prompt or request.category
    return ConceptRecord(concept=topic, context=request.ai_prompt or "General topic", importance=5)


# ─── Per-run state ─────────────────────────────────────────────────────────────

@dataclass
class _Run:
    """Mutable bookkeeping for one generate_problems call."""
    user_id: Optional[str]
    stages: List[str] = field(default_factory=list)
    timings: Dict[str, int] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    started: float = field(default_factory=time.perf_counter)

    def usage(self) -> UsageSummary:
        return UsageSummary(
            total_input_tokens=self.input_tokens,
            total_output_tokens=self.output_tokens,
            total_cost=round(self.cost, 6),
        )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ProblemGenerator:
    """
    Runs the adaptive pipeline for one GenerationRequest at a time.

    Every collaborator is injected (built once at process start).
    """

    def __init__(
        self,
        gateway: ModelGateway,
        retrieval: RetrievalEngine,
        cache: ProblemCache,
        cost_tracker: CostTracker,
        filter_chain: QualityFilterChain,
        settings: Optional[PipelineSettings] = None,
    ):
        self.gateway = gateway
        self.retrieval = retrieval
        self.cache = cache
        self.cost_tracker = cost_tracker
        self.filter_chain = filter_chain
        self.settings = settings or PipelineSettings()

    # ─── Usage accounting ──────────────────────────────────────────────────────

    def _usage_recorder(self, run: _Run):
        async def record(stage: str, response: ModelResponse) -> None:
            run.input_tokens += response.usage.input_tokens
            run.output_tokens += response.usage.output_tokens
            model = response.model or self.gateway.model
            run.cost += calculate_cost(response.usage.input_tokens, response.usage.output_tokens, model)
            if run.user_id:
                await self.cost_tracker.track_generation(
                    run.user_id,
                    stage,
                    response.usage.input_tokens,
                    response.usage.output_tokens,
                    model,
                )
        return record

    # ─── Stages ────────────────────────────────────────────────────────────────

    async def _extract_concepts(self, source: str, record) -> List[ConceptRecord]:
        start = time.perf_counter()
        try:
            response = await self.gateway.generate(
                system_prompt=BASE_SYSTEM_PROMPT,
                user_prompt=get_extraction_prompt(source),
                temperature=EXTRACTION_TEMPERATURE,
                response_format="json_object",
                stage="extraction",
            )
            await record("extraction", response)
        except Exception as e:
            log.error(f"[Extraction] Concept extraction failed: {e}")
            return []
        concepts = parse_concepts(response.content)
        log.info(f"[Extraction] ✓ {len(concepts)} concepts ({_elapsed_ms(start)}ms)")
        return concepts

    async def _retrieve_examples(self, query: str, domain: str) -> List[ReferenceSample]:
        start = time.perf_counter()
        try:
            examples = await self.retrieval.search_similar_problems(
                query,
                domain=domain,
                limit=self.settings.rag_limit,
                threshold=self.settings.rag_threshold,
            )
        except Exception as e:
            log.warning(f"[RAG] Search failed: {e}")
            return []
        log.info(f"[RAG] ✓ {len(examples)} examples ({_elapsed_ms(start)}ms)")
        return examples

    async def _design(
        self,
        concepts: List[ConceptRecord],
        request: GenerationRequest,
        target: int,
        record,
    ) -> List[ProblemDesign]:
        type_mix = type_mix_instructions(request.fill_blank_ratio, request.subjective_type)
        try:
            response = await self.gateway.generate(
                system_prompt=BASE_SYSTEM_PROMPT,
                user_prompt=get_design_prompt(concepts, request.difficulty, target, type_mix),
                temperature=DESIGN_TEMPERATURE,
                response_format="json_object",
                stage="design",
            )
        except RateLimitedError:
            raise
        except Exception as e:
            raise GenerationFailedError("Failed to design problems", stage="design") from e
        await record("design", response)

        try:
            designs = parse_designs(response.content)
        except ValueError as e:
            raise GenerationFailedError("Design response was not valid JSON", stage="design") from e
        if not designs:
            raise GenerationFailedError("Design stage returned no designs", stage="design")
        return designs

    async def _generate(self, user_prompt: str, record):
        try:
            response = await self.gateway.generate(
                system_prompt=BASE_SYSTEM_PROMPT + "\n\n" + COMMON_RULES,
                user_prompt=user_prompt,
                temperature=GENERATION_TEMPERATURE,
                response_format="json_object",
                stage="generation",
            )
        except RateLimitedError:
            raise
        except Exception as e:
            raise GenerationFailedError("Failed to generate problems") from e
        await record("generation", response)

        try:
            data = extract_json(response.content)
        except ValueError as e:
            raise GenerationFailedError("Generation response was not valid JSON") from e

        problems, malformed = parse_candidates(data.get("problems"))
        if not problems:
            raise GenerationFailedError("Generation returned no usable problems")
        return problems, malformed

    # ─── Entry point ───────────────────────────────────────────────────────────

    async def generate_problems(self, request: GenerationRequest) -> GenerationResult:
        """
        Generate up to request.problem_count filtered problems.

        Raises:
            RateLimitedError:      the model stayed rate limited through every retry
            GenerationFailedError: design or generation failed
        """
        run = _Run(user_id=request.user_id)
        pipeline_type = select_pipeline(request.generation_mode, request.source_length)
        target = generation_target(request.problem_count)
        record = self._usage_recorder(run)

        # ── Cache ───────────────────────────────────────────────────────────────
        cache_key = self.cache.key_for(request)
        cached = await self.cache.get_cached_problems(cache_key)
        if cached is not None:
            log.info(f"[Pipeline] Cache hit ({len(cached)} problems)")
            return GenerationResult(
                problems=cached,
                metadata=GenerationMetadata(
                    pipeline_type=pipeline_type,
                    stages=["cache"],
                    cache_hit=True,
                    requested_count=request.problem_count,
                    final_count=len(cached),
                ),
            )

        log.info(f"[Pipeline] Start [{pipeline_type}] mode={request.generation_mode} count={request.problem_count} target={target}")
        metadata = GenerationMetadata(
            pipeline_type=pipeline_type,
            requested_count=request.problem_count,
            generation_target=target,
        )

        # ── Stage 0: Preprocessing ──────────────────────────────────────────────
        source = request.source_data if request.generation_mode != "ai_only" else None
        if source and len(source) > self.settings.chunking_threshold:
            start = time.perf_counter()
            run.stages.append("preprocessing")
            source, metadata.chunking = preprocess_source(
                source,
                request.problem_count,
                threshold=self.settings.chunking_threshold,
                chunk_size=self.settings.chunk_size,
            )
            run.timings["preprocessing"] = _elapsed_ms(start)
            log.info(
                f"[Chunking] ✓ {metadata.chunking.original_length} → {metadata.chunking.processed_length} chars "
                f"({metadata.chunking.reduction_rate}% reduction, {run.timings['preprocessing']}ms)"
            )

        # ── Stage 1 + 2: Extraction ‖ Retrieval ─────────────────────────────────
        should_extract = pipeline_type == "full" and bool(source)
        should_retrieve = request.generation_mode != "user_data"
        if should_extract:
            run.stages.append("extraction")
        if should_retrieve:
            run.stages.append("rag")

        async def _no_concepts() -> List[ConceptRecord]:
            return []

        async def _no_examples() -> List[ReferenceSample]:
            return []

        start = time.perf_counter()
        concepts, examples = await asyncio.gather(
            self._extract_concepts(source, record) if should_extract else _no_concepts(),
            self._retrieve_examples(build_retrieval_query(request, source), request.category)
            if should_retrieve else _no_examples(),
        )
        if should_extract or should_retrieve:
            run.timings["parallel"] = _elapsed_ms(start)
        metadata.concepts_extracted = len(concepts)
        metadata.examples_used = len(examples)

        build_domain_prompt = get_domain_prompt_function(request.category)
        domain_prompt = build_domain_prompt(
            build_user_request(request, source, target),
            format_examples_for_prompt(examples),
        )
        type_mix = type_mix_instructions(request.fill_blank_ratio, request.subjective_type)
        complexity = complexity_instructions(
            request.complexity if request.generation_mode == "ai_only" else None
        )

        # ── Stage 3 + 4: Design → Generation ────────────────────────────────────
        if pipeline_type == "simple":
            user_prompt = "\n\n".join(
                part for part in [
                    domain_prompt,
                    type_mix,
                    complexity,
                    f"Generate {target} {request.difficulty} problems directly.",
                ] if part
            )
        else:
            start = time.perf_counter()
            run.stages.append("design")
            design_input = concepts[:target] if concepts else [placeholder_concept(request, source)]
            designs = await self._design(design_input, request, target, record)
            metadata.designs_created = len(designs)
            run.timings["design"] = _elapsed_ms(start)
            log.info(f"[Design] ✓ {len(designs)} designs ({run.timings['design']}ms)")
            user_prompt = get_generation_prompt(designs, domain_prompt, complexity)

        start = time.perf_counter()
        run.stages.append("generation")
        candidates, malformed = await self._generate(user_prompt, record)
        run.timings["generation"] = _elapsed_ms(start)
        metadata.candidates_generated = len(candidates) + malformed
        metadata.malformed_rejected = malformed
        log.info(f"[Generation] ✓ {len(candidates)} candidates, {malformed} malformed ({run.timings['generation']}ms)")

        # ── Stage 5: Filtering ──────────────────────────────────────────────────
        start = time.perf_counter()
        run.stages.append("filtering")
        outcome = await self.filter_chain.apply(candidates, request.problem_count, record)
        run.timings["filtering"] = _elapsed_ms(start)

        metadata.regeneration_needed = outcome.regeneration_needed
        metadata.self_critique_rejected = outcome.self_critique_rejected
        metadata.validator_checked = outcome.validator_checked
        metadata.validator_rejected = outcome.validator_rejected
        metadata.korean_issues_count = outcome.korean_issues_count
        metadata.type_validation_rejected = outcome.type_validation_rejected
        metadata.final_count = len(outcome.problems)

        if outcome.problems:
            await self.cache.set_cached_problems(cache_key, outcome.problems)
        else:
            log.warning("[Pipeline] Every candidate was filtered out; result not cached")

        run.timings["total"] = _elapsed_ms(run.started)
        metadata.stages = run.stages
        metadata.timings = run.timings
        metadata.usage = run.usage()

        log.info(
            f"[Pipeline] Done [{pipeline_type}] {metadata.final_count}/{request.problem_count} problems | "
            f"tokens in={run.input_tokens} out={run.output_tokens} cost=${run.cost:.4f} | "
            f"timings={run.timings}"
        )
        return GenerationResult(problems=outcome.problems, metadata=metadata)
