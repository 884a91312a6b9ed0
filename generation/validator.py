"""
Independent validator — second opinion on generated problems.

A separately prompted, harsh-rubric model call re-scores a problem without
trusting its self-critique. Sampling keeps cost down:
  - problems whose self-critique score is below the low-score threshold → always checked
  - everything else → checked at the sampling rate
  - mode "full" checks everything, mode "off" checks nothing
"""

import json
import logging
import random
from typing import Awaitable, Callable, List, Optional, Tuple

import json_repair

from generation.config import ValidatorMode
from generation.gpt_client import ModelGateway
from generation.schemas import GeneratedProblem, ModelResponse, ValidationResult

log = logging.getLogger("generation.pipeline")

ACCEPT_SCORE = 7
DEFAULT_SAMPLE_RATE = 0.2
DEFAULT_LOW_SCORE = 8

# (stage, response) → None; lets the caller account tokens per run
UsageRecorder = Callable[[str, ModelResponse], Awaitable[None]]

VALIDATOR_SYSTEM = "You are a strict quality validator. Be harsh and critical."

VALIDATION_PROMPT = """You are a HARSH exam question reviewer. Most problems are 5-7 quality range.

Rate this problem STRICTLY:
1. Is the correct answer unambiguous? (0-10)
2. Are distractors plausible but clearly wrong? (0-10)
3. Is this real exam-grade quality? (0-10)
4. Is the explanation clear and includes the answer? (0-10)

Problem to review:
{problem_json}

Output JSON only:
{{
  "actual_score": <1-10, average of the ratings above>,
  "issues": ["<specific issue 1>", "<specific issue 2>", ...],
  "recommendation": "<accept|reject|revise>"
}}

Be harsh - only exceptional problems should score 9-10."""


class IndependentValidator:
    """Scores problems with a separate model call; rejects below ACCEPT_SCORE."""

    def __init__(
        self,
        gateway: ModelGateway,
        mode: ValidatorMode = "off",
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        low_score: float = DEFAULT_LOW_SCORE,
        rng: Optional[random.Random] = None,
    ):
        self.gateway = gateway
        self.mode = mode
        self.sample_rate = sample_rate
        self.low_score = low_score
        self.rng = rng or random.Random()

    async def validate_problem(
        self,
        problem: GeneratedProblem,
        record_usage: Optional[UsageRecorder] = None,
    ) -> ValidationResult:
        """
        Run the harsh rubric on one problem.

        The self-critique block is stripped so the validator scores independently.
        Any failure is treated as a rejection.
        """
        payload = problem.model_dump(exclude={"self_critique"}, exclude_none=True)
        prompt = VALIDATION_PROMPT.format(
            problem_json=json.dumps(payload, ensure_ascii=False, indent=2)
        )
        try:
            response = await self.gateway.generate(
                system_prompt=VALIDATOR_SYSTEM,
                user_prompt=prompt,
                temperature=0.3,
                response_format="json_object",
                stage="validation",
            )
            if record_usage is not None:
                await record_usage("validation", response)
            data = json_repair.loads(response.content or "{}")
            if not isinstance(data, dict):
                raise ValueError("validator did not return a JSON object")
            return ValidationResult(
                actual_score=data.get("actual_score") or 0,
                issues=data.get("issues") or [],
                recommendation=data.get("recommendation") or "reject",
            )
        except Exception as e:
            log.error(f"[Validator] Validation failed, rejecting conservatively: {e}")
            return ValidationResult(
                actual_score=0,
                issues=["Validation service failed"],
                recommendation="reject",
            )

    def select_for_validation(self, problems: List[GeneratedProblem]) -> List[GeneratedProblem]:
        """Pick which problems to send to the validator under the current mode."""
        if self.mode == "off":
            return []
        if self.mode == "full":
            return list(problems)

        selected = []
        for problem in problems:
            score = problem.quality_score
            if score is not None and score < self.low_score:
                selected.append(problem)
            elif self.rng.random() < self.sample_rate:
                selected.append(problem)
        return selected

    async def validate_with_sampling(
        self,
        problems: List[GeneratedProblem],
        record_usage: Optional[UsageRecorder] = None,
    ) -> Tuple[List[GeneratedProblem], int, int]:
        """
        Validate a subset of problems and drop the rejected ones.

        Returns:
            (survivors in original order, number checked, number rejected)
        """
        to_validate = self.select_for_validation(problems)
        if not to_validate:
            return list(problems), 0, 0

        log.info(f"[Validator] Validating {len(to_validate)}/{len(problems)} problems (mode={self.mode})")

        rejected_ids = set()
        for problem in to_validate:
            verdict = await self.validate_problem(problem, record_usage)
            if verdict.actual_score < ACCEPT_SCORE or verdict.recommendation == "reject":
                rejected_ids.add(id(problem))
                log.warning(
                    f"[Validator] Rejected problem: self={problem.quality_score} "
                    f"validator={verdict.actual_score} issues={verdict.issues}"
                )

        survivors = [p for p in problems if id(p) not in rejected_ids]
        log.info(f"[Validator] Validation complete: {len(survivors)}/{len(problems)} passed")
        return survivors, len(to_validate), len(rejected_ids)
