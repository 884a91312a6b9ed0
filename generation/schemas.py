"""
Pydantic schemas for the problem-generation pipeline.

Request  (GenerationRequest)        → caller-owned, immutable
Pipeline (ConceptRecord, ProblemDesign) → owned by a single run, never persisted
Output   (GeneratedProblem, GenerationMetadata, GenerationResult)
Stored   (ReferenceSample, CacheEntry, CostRecord) → shapes of persisted rows
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


GenerationMode = Literal["user_data", "hybrid", "ai_only"]
Difficulty = Literal["easy", "medium", "hard"]
Complexity = Literal["simple", "advanced"]
PipelineType = Literal["simple", "medium", "full"]
QuestionType = Literal["multiple_choice", "multiple_select", "fill_blank", "essay"]
SampleOrigin = Literal["human", "generated"]


# ─── Request ──────────────────────────────────────────────────────────────────

class GenerationRequest(BaseModel):
    """One request for a set of practice problems."""
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1, description="Project category / domain, e.g. 코딩, 영어")
    source_data: Optional[str] = Field(None, description="User-supplied study material")
    ai_prompt: Optional[str] = Field(None, description="Free-text topic prompt")
    problem_count: int = Field(10, ge=1, le=100)
    difficulty: Difficulty = "medium"
    generation_mode: GenerationMode = "user_data"
    fill_blank_ratio: int = Field(60, ge=0, le=100, description="Percent of subjective (blank) vs choice questions")
    subjective_type: Literal["fill_blank", "essay", "both"] = "both"
    grading_strictness: Literal["strict", "normal", "lenient"] = "normal"
    complexity: Optional[Complexity] = None
    # Not part of the cache key: only used for cost attribution
    user_id: Optional[str] = None

    @property
    def source_length(self) -> int:
        return len(self.source_data or "")


# ─── Pipeline-internal types ──────────────────────────────────────────────────

@dataclass
class TextChunk:
    """One sentence-bounded span of the source text (single chunking pass only)."""
    text: str
    index: int
    position: float          # 0.0 – 1.0 over the whole document
    importance: float = 0.0


class ConceptRecord(BaseModel):
    """Concept extracted from source material (full pipeline only)."""
    concept: str
    context: str = ""
    importance: float = 5


class ProblemDesign(BaseModel):
    """Design-stage output bridging concepts to the generation stage."""
    concept: str
    question_type: str = "multiple_choice"
    correct_answer_logic: str = ""
    distractor_logic: Optional[str] = None
    difficulty_rationale: str = ""


# ─── Generation output ────────────────────────────────────────────────────────

class SelfCritique(BaseModel):
    """Quality assessment the generation model attaches to its own problem."""
    quality_score: Optional[float] = Field(None, ge=0, le=10)
    should_regenerate: bool = False
    issues: List[str] = Field(default_factory=list)


class GeneratedProblem(BaseModel):
    """Single generated practice problem."""
    question: str = Field(..., min_length=1)
    question_type: QuestionType
    # Required for choice types, must be null for fill_blank / essay
    options: Optional[List[str]] = None
    correct_answer: str
    alternatives: List[str] = Field(default_factory=list)
    explanation: str = ""
    difficulty: Optional[str] = None
    max_length: Optional[int] = None
    source_excerpt: Optional[str] = None
    self_critique: Optional[SelfCritique] = None

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _answer_to_text(cls, value: Any) -> Any:
        # multiple_select answers sometimes come back as a list
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("options", "alternatives", mode="before")
    @classmethod
    def _stringify_items(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name == "alternatives":
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        return value

    @field_validator("explanation", mode="before")
    @classmethod
    def _null_explanation(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def quality_score(self) -> Optional[float]:
        return self.self_critique.quality_score if self.self_critique else None


# ─── Stored shapes ────────────────────────────────────────────────────────────

class ReferenceSample(BaseModel):
    """Reference problem used as a few-shot example."""
    id: Optional[int] = None
    domain: str
    subdomain: Optional[str] = None
    problem: Dict[str, Any]
    quality_score: float = 8
    keywords: List[str] = Field(default_factory=list)
    origin: SampleOrigin = "generated"
    generation: int = 1
    human_verified: bool = False
    # Only set on vector-search results
    similarity: Optional[float] = None


class CacheEntry(BaseModel):
    cache_key: str
    problems: List[GeneratedProblem]
    created_at: datetime


class CostRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    stage: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    model: str
    created_at: Optional[datetime] = None


class StageCost(BaseModel):
    cost: float = 0.0
    tokens: int = 0
    count: int = 0


class UserCostSummary(BaseModel):
    total_cost: float = 0.0
    total_tokens: int = 0
    by_stage: Dict[str, StageCost] = Field(default_factory=dict)
    # YYYY-MM-DD (UTC) → cost
    daily_trend: Dict[str, float] = Field(default_factory=dict)


class SampleStats(BaseModel):
    """Provenance mix of the reference sample store."""
    human: int = 0
    generated: int = 0
    total: int = 0
    human_ratio: float = 0.0   # percent

    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> "SampleStats":
        human = counts.get("human", 0)
        generated = counts.get("generated", 0)
        total = human + generated
        ratio = round(human / total * 100, 2) if total else 0.0
        return cls(human=human, generated=generated, total=total, human_ratio=ratio)


class MonitoringReport(BaseModel):
    period_days: int
    costs: UserCostSummary
    samples: SampleStats


# ─── Model gateway ────────────────────────────────────────────────────────────

class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ModelResponse(BaseModel):
    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str


# ─── Quality checks ───────────────────────────────────────────────────────────

class ValidationResult(BaseModel):
    """Independent validator verdict for one problem."""
    actual_score: float = 0
    issues: List[str] = Field(default_factory=list)
    recommendation: Literal["accept", "reject", "revise"] = "reject"


class QualityIssue(BaseModel):
    """One source-language quality issue found in question text."""
    type: Literal["informal", "konglish", "grammar"]
    position: str
    original: str
    suggestion: str


# ─── Result & metadata ────────────────────────────────────────────────────────

class UsageSummary(BaseModel):
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0


class ChunkingInfo(BaseModel):
    applied: bool = False
    original_length: Optional[int] = None
    processed_length: Optional[int] = None
    reduction_rate: Optional[int] = None
    total_chunks: Optional[int] = None
    selected_chunks: Optional[int] = None


class GenerationMetadata(BaseModel):
    """Read-only diagnostics for one generate_problems call."""
    pipeline_type: PipelineType
    stages: List[str] = Field(default_factory=list)
    cache_hit: bool = False
    requested_count: int = 0
    generation_target: int = 0
    concepts_extracted: int = 0
    examples_used: int = 0
    designs_created: int = 0
    candidates_generated: int = 0
    regeneration_needed: int = 0
    malformed_rejected: int = 0
    self_critique_rejected: int = 0
    validator_checked: int = 0
    validator_rejected: int = 0
    korean_issues_count: int = 0
    type_validation_rejected: int = 0
    final_count: int = 0
    usage: UsageSummary = Field(default_factory=UsageSummary)
    chunking: ChunkingInfo = Field(default_factory=ChunkingInfo)
    timings: Dict[str, int] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    problems: List[GeneratedProblem]
    metadata: GenerationMetadata


# ─── Seeding ──────────────────────────────────────────────────────────────────

class SeedTarget(BaseModel):
    tech: str
    domain: str
    count: int = Field(..., ge=1)


class SeedReport(BaseModel):
    tech: str
    generated: int = 0
    saved: int = 0
    error: Optional[str] = None
