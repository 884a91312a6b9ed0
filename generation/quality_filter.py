"""
Quality filter chain — runs after the generation stage.

Fixed order; each stage only removes problems, never adds or edits:
  1. Self-critique threshold   (score present and < 7 → drop)
  2. Independent validator     (configurable: off | sampled | full)
  3. Korean quality            (> 2 distinct issues → drop)
  4. Schema / type validation  (option shape must match question type)
  5. Truncation                (first N = requested count)

Rejections are only counted; nothing is surfaced per problem.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from generation.korean_quality import count_distinct_issues, validate_korean_quality
from generation.schemas import GeneratedProblem
from generation.validator import IndependentValidator, UsageRecorder

log = logging.getLogger("generation.pipeline")

SELF_CRITIQUE_MIN_SCORE = 7
MAX_LANGUAGE_ISSUES = 2
MCQ_OPTION_COUNT = 4
MIN_SELECT_OPTIONS = 2
MIN_OPTION_LENGTH = 10
PLACEHOLDER_OPTION = re.compile(r"^[A-D]$")
NO_OPTION_TYPES = ("fill_blank", "essay")


@dataclass
class FilterOutcome:
    problems: List[GeneratedProblem]
    regeneration_needed: int = 0
    self_critique_rejected: int = 0
    validator_checked: int = 0
    validator_rejected: int = 0
    korean_issues_count: int = 0
    type_validation_rejected: int = 0


# ─── Parse boundary ────────────────────────────────────────────────────────────

def parse_candidates(raw_items: Any) -> Tuple[List[GeneratedProblem], int]:
    """
    Turn the loosely-typed "problems" array from the model into GeneratedProblem objects.

    Returns (parsed problems, number of malformed items dropped).
    """
    if not isinstance(raw_items, list):
        return [], 0

    problems: List[GeneratedProblem] = []
    malformed = 0
    for item in raw_items:
        if not isinstance(item, dict):
            malformed += 1
            continue
        try:
            problems.append(GeneratedProblem.model_validate(item))
        except ValidationError as e:
            malformed += 1
            log.warning(f"[Filter] Malformed problem dropped: {e.error_count()} field error(s)")
    return problems, malformed


# ─── Individual checks ─────────────────────────────────────────────────────────

def passes_self_critique(problem: GeneratedProblem) -> bool:
    score = problem.quality_score
    return score is None or score >= SELF_CRITIQUE_MIN_SCORE


def is_placeholder_option(option: str) -> bool:
    return len(option) < MIN_OPTION_LENGTH or bool(PLACEHOLDER_OPTION.match(option.strip()))


def validate_problem_shape(problem: GeneratedProblem) -> Optional[str]:
    """Return the reason a problem's option shape is invalid, or None if it is fine."""
    if problem.question_type == "multiple_choice":
        if not problem.options or len(problem.options) != MCQ_OPTION_COUNT:
            return "multiple_choice needs exactly 4 options"
        if any(is_placeholder_option(opt) for opt in problem.options):
            return "multiple_choice options contain placeholders"
    if problem.question_type == "multiple_select":
        if not problem.options or len(problem.options) < MIN_SELECT_OPTIONS:
            return f"multiple_select needs at least {MIN_SELECT_OPTIONS} options"
        if any(is_placeholder_option(opt) for opt in problem.options):
            return "multiple_select options contain placeholders"
    if problem.question_type in NO_OPTION_TYPES and problem.options is not None:
        return f"{problem.question_type} must not have options"
    return None


# ─── Chain ─────────────────────────────────────────────────────────────────────

class QualityFilterChain:
    """Applies the five filter stages in their fixed order."""

    def __init__(self, validator: Optional[IndependentValidator] = None):
        self.validator = validator

    async def apply(
        self,
        problems: List[GeneratedProblem],
        requested_count: int,
        record_usage: Optional[UsageRecorder] = None,
    ) -> FilterOutcome:
        outcome = FilterOutcome(problems=[])
        outcome.regeneration_needed = sum(
            1 for p in problems if p.self_critique and p.self_critique.should_regenerate
        )

        # 1. Self-critique threshold
        kept = [p for p in problems if passes_self_critique(p)]
        outcome.self_critique_rejected = len(problems) - len(kept)

        # 2. Independent validator
        if self.validator is not None and self.validator.mode != "off":
            kept, checked, rejected = await self.validator.validate_with_sampling(kept, record_usage)
            outcome.validator_checked = checked
            outcome.validator_rejected = rejected
        else:
            log.info("[Filter] Validator skipped (self-critique only)")

        # 3. Korean quality
        survivors = []
        for problem in kept:
            issues = validate_korean_quality(problem.question)
            if count_distinct_issues(issues) > MAX_LANGUAGE_ISSUES:
                outcome.korean_issues_count += 1
                log.warning(f"[Filter] Korean quality issues: {[i.original for i in issues]}")
                continue
            survivors.append(problem)
        kept = survivors

        # 4. Schema / type validation
        survivors = []
        for problem in kept:
            reason = validate_problem_shape(problem)
            if reason:
                outcome.type_validation_rejected += 1
                log.warning(f"[Filter] Invalid {problem.question_type}: {reason}")
                continue
            survivors.append(problem)

        # 5. Truncation
        outcome.problems = survivors[:requested_count]
        return outcome
