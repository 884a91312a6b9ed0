import asyncio

import pytest

from conftest import FakeStore, sample
from rag.retrieval import (
    NO_EXAMPLES,
    RetrievalEngine,
    format_examples_for_prompt,
    hybrid_merge,
    prioritize_human_samples,
)


def ids(samples):
    return [s.id for s in samples]


# ─── RRF ───────────────────────────────────────────────────────────────────────

def test_keyword_hits_outrank_vector_hits_at_same_rank():
    merged = hybrid_merge([sample(1)], [sample(2)], limit=5)
    assert ids(merged) == [1, 2]


def test_sample_in_both_lists_ranks_first():
    merged = hybrid_merge([sample(1), sample(2)], [sample(3), sample(2)], limit=5)
    assert ids(merged)[0] == 2


def test_merge_keeps_vector_similarity():
    merged = hybrid_merge([sample(1)], [sample(1, similarity=0.91)], limit=5)
    assert merged[0].similarity == 0.91


def test_merge_truncates():
    merged = hybrid_merge([sample(i) for i in range(10)], [], limit=3)
    assert ids(merged) == [0, 1, 2]


# ─── Provenance ────────────────────────────────────────────────────────────────

def test_provenance_caps():
    samples = [sample(i, "generated") for i in range(5)] + [sample(10 + i, "human") for i in range(5)]
    result = prioritize_human_samples(samples, limit=5)

    assert ids(result) == [10, 11, 12, 0, 1]


def test_provenance_underfill_is_kept():
    samples = [sample(i, "generated") for i in range(5)]
    assert ids(prioritize_human_samples(samples, limit=5)) == [0, 1]


# ─── Engine ────────────────────────────────────────────────────────────────────

def test_search_merges_both_sources():
    store = FakeStore(
        keyword=[sample(1, "human"), sample(2, "human")],
        vector=[sample(3, "human", similarity=0.8), sample(1, "human", similarity=0.9)],
    )
    result = asyncio.run(RetrievalEngine(store).search_similar_problems("react hooks", domain="코딩"))

    assert ids(result) == [1, 2, 3]
    assert store.keyword_calls == [(["react", "hooks"], "코딩", 10)]


def test_fallback_when_few_results():
    store = FakeStore(
        keyword=[sample(1, "human", subdomain="React")],
        by_subdomain={"프론트엔드": [sample(20, "human", subdomain="프론트엔드")]},
        general=[sample(30, "human"), sample(31, "human")],
    )
    result = asyncio.run(RetrievalEngine(store).search_similar_problems("React", domain="코딩"))

    assert ids(result) == [1, 20, 30]


def test_fallback_skips_general_when_parent_has_enough():
    store = FakeStore(
        by_subdomain={"프론트엔드": [sample(20, "human"), sample(21, "human")]},
        general=[sample(30, "human")],
    )
    result = asyncio.run(RetrievalEngine(store).search_similar_problems("React", domain="코딩"))

    assert ids(result) == [20, 21]


def test_no_fallback_without_domain():
    store = FakeStore(general=[sample(30, "human")])
    assert asyncio.run(RetrievalEngine(store).search_similar_problems("React")) == []


def test_sub_search_failures_degrade():
    store = FakeStore(
        keyword=[sample(1, "human")],
        vector_error=RuntimeError("embedding service down"),
    )
    result = asyncio.run(RetrievalEngine(store).search_similar_problems("react"))
    assert ids(result) == [1]

    store = FakeStore(keyword_error=RuntimeError("db down"), vector_error=RuntimeError("down"))
    assert asyncio.run(RetrievalEngine(store).search_similar_problems("react")) == []


def test_at_most_limit_results():
    store = FakeStore(keyword=[sample(i, "human") for i in range(8)])
    result = asyncio.run(RetrievalEngine(store).search_similar_problems("react", limit=5))
    assert len(result) <= 5


@pytest.mark.parametrize("query, domain", [("", None), ("   ", "코딩"), ("react", ""), (None, None)])
def test_malformed_arguments_raise(query, domain):
    with pytest.raises(ValueError):
        asyncio.run(RetrievalEngine(FakeStore()).search_similar_problems(query, domain=domain))


# ─── Prompt formatting ─────────────────────────────────────────────────────────

def test_format_examples():
    text = format_examples_for_prompt([sample(1, similarity=0.873), sample(2)])
    assert text.startswith("Example 1 (Similarity: 87.3%):")
    assert "\n\n---\n\nExample 2:" in text
    assert '"question": "sample 1"' in text


def test_format_no_examples():
    assert format_examples_for_prompt([]) == NO_EXAMPLES
