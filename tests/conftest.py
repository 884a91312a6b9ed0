"""
In-memory fakes for every injected collaborator.

Async code is driven with asyncio.run() inside plain test functions.
"""

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from generation.config import PipelineSettings
from generation.schemas import ModelResponse, ReferenceSample, TokenUsage


# ─── Problem builders ──────────────────────────────────────────────────────────

def mcq(question: str = "JavaScript에서 클로저가 유지하는 것은 무엇입니까?", score: Optional[float] = 9, **overrides) -> Dict[str, Any]:
    problem = {
        "question": question,
        "question_type": "multiple_choice",
        "options": [
            "외부 함수의 렉시컬 환경 참조",
            "전역 객체에 대한 복사본",
            "호출 시점의 this 바인딩",
            "모든 지역 변수의 깊은 복사",
        ],
        "correct_answer": "외부 함수의 렉시컬 환경 참조",
        "alternatives": [],
        "explanation": "클로저는 외부 함수의 렉시컬 환경 참조를 유지합니다.",
        "difficulty": "medium",
    }
    if score is not None:
        problem["self_critique"] = {"quality_score": score, "should_regenerate": False, "issues": []}
    problem.update(overrides)
    return problem


def fill_blank(question: str = "함수가 선언될 때의 환경을 기억하는 것을 _____ 라고 합니다.", score: Optional[float] = 8, **overrides) -> Dict[str, Any]:
    problem = {
        "question": question,
        "question_type": "fill_blank",
        "options": None,
        "correct_answer": "클로저",
        "alternatives": ["closure"],
        "explanation": "정답은 클로저입니다.",
    }
    if score is not None:
        problem["self_critique"] = {"quality_score": score, "should_regenerate": False, "issues": []}
    problem.update(overrides)
    return problem


def problems_json(*problems: Dict[str, Any]) -> str:
    return json.dumps({"problems": list(problems)}, ensure_ascii=False)


def sample(id: int, origin: str = "generated", domain: str = "코딩", subdomain: Optional[str] = None, similarity=None) -> ReferenceSample:
    return ReferenceSample(
        id=id,
        domain=domain,
        subdomain=subdomain,
        problem={"question": f"sample {id}"},
        origin=origin,
        similarity=similarity,
    )


# ─── OpenAI client ─────────────────────────────────────────────────────────────

class FakeCompletions:
    """chat.completions stand-in; each item in `script` is a content string or an exception."""

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=item))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=50),
        )


class FakeEmbeddings:
    def __init__(self, vector: Optional[List[float]] = None, error: Optional[Exception] = None):
        self.vector = vector or [0.1, 0.2, 0.3]
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        inputs = kwargs["input"] if isinstance(kwargs["input"], list) else [kwargs["input"]]
        return SimpleNamespace(data=[SimpleNamespace(embedding=self.vector) for _ in inputs])


def fake_openai(script: Optional[List[Any]] = None, embeddings: Optional[FakeEmbeddings] = None):
    completions = FakeCompletions(script or [])
    return SimpleNamespace(
        chat=SimpleNamespace(completions=completions),
        embeddings=embeddings or FakeEmbeddings(),
    )


# ─── Model gateway ─────────────────────────────────────────────────────────────

class FakeGateway:
    """
    ModelGateway stand-in keyed by stage.

    responses[stage] is a list consumed in order; each item is a content
    string or an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[str, List[Any]]] = None, model: str = "gpt-4o-mini"):
        self.responses = {k: list(v) for k, v in (responses or {}).items()}
        self.model = model
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, system_prompt, user_prompt, temperature=0.7, response_format=None, stage=None, max_tokens=None):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "stage": stage,
        })
        queue = self.responses.get(stage or "other")
        if not queue:
            raise AssertionError(f"unexpected {stage} call")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return ModelResponse(content=item, usage=TokenUsage(input_tokens=1000, output_tokens=500), model=self.model)

    def stages(self) -> List[str]:
        return [c["stage"] for c in self.calls]


# ─── Redis ─────────────────────────────────────────────────────────────────────

class FakeRedis:
    """The hash subset of redis.asyncio.Redis used by ProblemCache."""

    def __init__(self):
        self.data: Dict[str, Dict[str, str]] = {}
        self.ttls: Dict[str, int] = {}

    async def hgetall(self, key):
        return dict(self.data.get(key, {}))

    async def hset(self, key, mapping):
        self.data.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def delete(self, key):
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0


# ─── Sample store / retrieval ──────────────────────────────────────────────────

class FakeStore:
    """SampleStore stand-in with canned results per query kind."""

    def __init__(
        self,
        keyword: Optional[List[ReferenceSample]] = None,
        vector: Optional[List[ReferenceSample]] = None,
        by_subdomain: Optional[Dict[str, List[ReferenceSample]]] = None,
        general: Optional[List[ReferenceSample]] = None,
        keyword_error: Optional[Exception] = None,
        vector_error: Optional[Exception] = None,
        store_error: Optional[Exception] = None,
    ):
        self.keyword = keyword or []
        self.vector = vector or []
        self.by_subdomain = by_subdomain or {}
        self.general = general or []
        self.keyword_error = keyword_error
        self.vector_error = vector_error
        self.store_error = store_error
        self.stored: List[ReferenceSample] = []
        self.keyword_calls: List[Any] = []

    async def keyword_search(self, tokens, domain=None, limit=10):
        self.keyword_calls.append((tokens, domain, limit))
        if self.keyword_error:
            raise self.keyword_error
        return self.keyword[:limit]

    async def vector_search(self, query, domain=None, threshold=0.7, limit=10):
        if self.vector_error:
            raise self.vector_error
        return self.vector[:limit]

    async def samples_by_subdomain(self, domain, subdomain, limit=2):
        return self.by_subdomain.get(subdomain, [])[:limit]

    async def general_samples(self, domain, limit=2):
        return self.general[:limit]

    async def store_problem_sample(self, sample):
        if self.store_error:
            raise self.store_error
        stored = sample.model_copy(update={"id": 1000 + len(self.stored)})
        self.stored.append(stored)
        return stored

    async def bulk_store_samples(self, samples):
        stored = []
        for s in samples:
            try:
                stored.append(await self.store_problem_sample(s))
            except Exception:
                continue
        return stored


class FakeRetrieval:
    def __init__(self, results: Optional[List[ReferenceSample]] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.queries: List[Any] = []

    async def search_similar_problems(self, query, domain=None, limit=5, threshold=0.7):
        self.queries.append((query, domain))
        if self.error:
            raise self.error
        return self.results[:limit]


# ─── Cost tracker ──────────────────────────────────────────────────────────────

class FakeCostTracker:
    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    async def track_generation(self, user_id, stage, input_tokens, output_tokens, model):
        self.records.append({
            "user_id": user_id,
            "stage": stage,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "model": model,
        })
        return 0.0


@pytest.fixture
def settings():
    return PipelineSettings()
