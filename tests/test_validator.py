import asyncio
import json
import random

from conftest import FakeGateway, mcq
from generation.schemas import GeneratedProblem
from generation.validator import IndependentValidator


def verdict(score, recommendation="accept"):
    return json.dumps({"actual_score": score, "issues": [], "recommendation": recommendation})


def problem(score=9, question="클로저에 관한 설명으로 옳은 것은 무엇입니까?"):
    return GeneratedProblem.model_validate(mcq(question=question, score=score))


class FixedRandom(random.Random):
    def __init__(self, value):
        super().__init__()
        self.value = value

    def random(self):
        return self.value


def test_off_mode_selects_nothing():
    validator = IndependentValidator(FakeGateway(), mode="off")
    assert validator.select_for_validation([problem(), problem(3)]) == []


def test_full_mode_selects_everything():
    problems = [problem(), problem(9.5)]
    validator = IndependentValidator(FakeGateway(), mode="full")
    assert validator.select_for_validation(problems) == problems


def test_sampled_mode_always_checks_low_scores():
    low, high = problem(7.5), problem(9)
    never = IndependentValidator(FakeGateway(), mode="sampled", rng=FixedRandom(0.99))
    always = IndependentValidator(FakeGateway(), mode="sampled", rng=FixedRandom(0.0))

    assert never.select_for_validation([low, high]) == [low]
    assert always.select_for_validation([low, high]) == [low, high]


def test_validate_problem_hides_self_critique():
    gateway = FakeGateway({"validation": [verdict(8)]})
    validator = IndependentValidator(gateway, mode="full")

    result = asyncio.run(validator.validate_problem(problem()))

    assert result.actual_score == 8
    assert result.recommendation == "accept"
    assert "self_critique" not in gateway.calls[0]["user_prompt"]


def test_validation_failure_rejects_conservatively():
    gateway = FakeGateway({"validation": [RuntimeError("timeout")]})
    validator = IndependentValidator(gateway, mode="full")

    result = asyncio.run(validator.validate_problem(problem()))

    assert result.actual_score == 0
    assert result.recommendation == "reject"


def test_rejects_low_score_or_reject_recommendation():
    gateway = FakeGateway({"validation": [verdict(6), verdict(9, "reject"), verdict(7)]})
    validator = IndependentValidator(gateway, mode="full")
    problems = [problem(question=f"{i}번 문제는 무엇입니까?") for i in range(3)]

    survivors, checked, rejected = asyncio.run(validator.validate_with_sampling(problems))

    assert checked == 3
    assert rejected == 2
    assert survivors == [problems[2]]


def test_usage_reported_to_recorder():
    gateway = FakeGateway({"validation": [verdict(9)]})
    validator = IndependentValidator(gateway, mode="full")
    recorded = []

    async def record(stage, response):
        recorded.append((stage, response.usage.input_tokens))

    asyncio.run(validator.validate_with_sampling([problem()], record))

    assert recorded == [("validation", 1000)]
