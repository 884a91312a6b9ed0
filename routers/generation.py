"""
Generation Router — /generation

Endpoints:
  POST /generation/problems          — generate a problem set
  POST /generation/samples           — ensure reference samples exist for a technology
  GET  /generation/costs/{user_id}   — token/cost summary for a user
  GET  /generation/monitoring/{user_id} — cost summary plus reference-sample provenance
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from generation.cost_tracker import CostTracker
from generation.errors import GenerationFailedError, RateLimitedError, SecurityViolationError
from generation.input_security import validate_user_input
from generation.pipeline import ProblemGenerator
from generation.schemas import (
    Complexity,
    Difficulty,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    MonitoringReport,
    ReferenceSample,
    UserCostSummary,
)
from rag.auto_generate import AutoSeeder
from rag.sample_store import SampleStore

router = APIRouter(prefix="/generation", tags=["generation"])

# Use Python's standard logger so output appears in the uvicorn console
log = logging.getLogger("generation.pipeline")
logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")


# ─── Dependencies ──────────────────────────────────────────────────────────────

def get_generator(request: Request) -> ProblemGenerator:
    return request.app.state.generator


def get_seeder(request: Request) -> AutoSeeder:
    return request.app.state.seeder


def get_cost_tracker(request: Request) -> CostTracker:
    return request.app.state.cost_tracker


def get_sample_store(request: Request) -> SampleStore:
    return request.app.state.sample_store


# ─── Request bodies ────────────────────────────────────────────────────────────

class GenerateProblemsBody(BaseModel):
    category: str = Field(..., min_length=1)
    source_data: Optional[str] = None
    ai_prompt: Optional[str] = None
    problem_count: int = Field(10, ge=1, le=100)
    difficulty: Difficulty = "medium"
    generation_mode: GenerationMode = "user_data"
    fill_blank_ratio: int = Field(60, ge=0, le=100)
    subjective_type: Literal["fill_blank", "essay", "both"] = "both"
    grading_strictness: Literal["strict", "normal", "lenient"] = "normal"
    complexity: Complexity = "simple"
    user_id: Optional[str] = None


class SampleRequestBody(BaseModel):
    tech: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)
    min_samples: int = Field(3, ge=1, le=20)


def to_generation_request(body: GenerateProblemsBody) -> GenerationRequest:
    """
    Apply request-shape rules and input security.

    Raises HTTPException(400) for a missing required input or a security violation.
    """
    source = (body.source_data or "").strip() or None
    prompt = (body.ai_prompt or "").strip() or None

    if body.generation_mode in ("user_data", "hybrid") and not source:
        raise HTTPException(status_code=400, detail=f"source_data is required for {body.generation_mode} mode")
    if body.generation_mode == "ai_only" and not prompt:
        raise HTTPException(status_code=400, detail="ai_prompt is required for ai_only mode")

    for field_name, value in (("source_data", source), ("ai_prompt", prompt)):
        if not value:
            continue
        try:
            validate_user_input(value)
        except SecurityViolationError as e:
            log.warning(f"[Security] Rejected {field_name} ({e.violation_type}): {e}")
            raise HTTPException(status_code=400, detail=f"Invalid {field_name}: {e}")

    ai_only = body.generation_mode == "ai_only"
    return GenerationRequest(
        category=body.category,
        source_data=None if ai_only else source,
        ai_prompt=prompt if ai_only else None,
        problem_count=body.problem_count,
        difficulty=body.difficulty,
        generation_mode=body.generation_mode,
        fill_blank_ratio=body.fill_blank_ratio,
        subjective_type=body.subjective_type,
        grading_strictness=body.grading_strictness,
        complexity=body.complexity if ai_only else None,
        user_id=body.user_id,
    )


# ─── Problem generation ────────────────────────────────────────────────────────

@router.post("/problems", response_model=GenerationResult)
async def generate_problems(
    body: GenerateProblemsBody,
    generator: ProblemGenerator = Depends(get_generator),
):
    """
    **Generate a practice problem set.**

    - `user_data`: problems only from `source_data`
    - `hybrid`:    `source_data` plus retrieved reference examples
    - `ai_only`:   problems from `ai_prompt` (honours `complexity`)
    """
    request = to_generation_request(body)
    log.info(f"[API] generate category={request.category} mode={request.generation_mode} count={request.problem_count}")

    try:
        return await generator.generate_problems(request)
    except RateLimitedError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except GenerationFailedError as e:
        log.error(f"[API] Generation failed at {e.stage}: {e}")
        raise HTTPException(status_code=502, detail="Problem generation failed. Please try again.")


# ─── Reference samples ─────────────────────────────────────────────────────────

@router.post("/samples", response_model=List[ReferenceSample])
async def get_or_create_samples(
    body: SampleRequestBody,
    seeder: AutoSeeder = Depends(get_seeder),
):
    """Return reference samples for a technology, generating the shortfall."""
    return await seeder.get_or_create_samples(body.tech, body.domain, body.min_samples)


# ─── Costs ─────────────────────────────────────────────────────────────────────

@router.get("/costs/{user_id}", response_model=UserCostSummary)
async def get_user_costs(
    user_id: str,
    days: int = Query(30, ge=1, le=365),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    return await cost_tracker.get_user_costs(user_id, days=days)


@router.get("/monitoring/{user_id}", response_model=MonitoringReport)
async def get_monitoring_report(
    user_id: str,
    days: int = Query(30, ge=1, le=365),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
    store: SampleStore = Depends(get_sample_store),
):
    """Cost report plus the human/generated mix of the reference samples."""
    costs = await cost_tracker.get_user_costs(user_id, days=days)
    try:
        samples = await store.count_by_origin()
    except Exception as e:
        log.error(f"[API] Failed to count samples by origin: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch monitoring data")
    return MonitoringReport(period_days=days, costs=costs, samples=samples)
