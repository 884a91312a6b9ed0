import asyncio

import pytest

from conftest import fake_openai, mcq
from embeddings.generator import EmbeddingGenerator
from generation.schemas import ReferenceSample
from rag.sample_store import SampleStore, extract_keywords


class FakeQuery:
    def __init__(self, rows):
        self.rows = rows

    def group_by(self, *args):
        return self

    def all(self):
        return list(self.rows)


class FakeSession:
    """The slice of sqlalchemy.orm.Session used on the write path."""

    def __init__(self, db):
        self.db = db

    def add(self, row):
        self.db.pending.append(row)

    def commit(self):
        for row in self.db.pending:
            if row.id is None:
                row.id = len(self.db.rows) + 1
            self.db.rows[row.id] = row
        self.db.pending = []

    def refresh(self, row):
        pass

    def rollback(self):
        self.db.pending = []

    def close(self):
        pass

    def get(self, model, ident):
        return self.db.rows.get(ident)

    def delete(self, row):
        self.db.rows.pop(row.id, None)

    def query(self, *columns):
        return FakeQuery(self.db.origin_counts)


class FakeDatabase:
    def __init__(self, origin_counts=()):
        self.rows = {}
        self.pending = []
        self.origin_counts = origin_counts

    def session(self):
        return FakeSession(self)


class FakeQdrant:
    def __init__(self, error=None):
        self.error = error
        self.indexed = {}

    def index_sample(self, sample_id, embedding, payload):
        if self.error:
            raise self.error
        self.indexed[sample_id] = payload


def make_store(db, qdrant):
    return SampleStore(db.session, qdrant, EmbeddingGenerator(fake_openai()))


def reference(**overrides):
    fields = dict(domain="코딩", subdomain="React", problem=mcq(), origin="human", human_verified=True)
    fields.update(overrides)
    return ReferenceSample(**fields)


def test_keywords_include_domain_and_subdomain():
    assert extract_keywords("코딩", "React", "")[:2] == ["코딩", "react"]


def test_keywords_from_question_text():
    keywords = extract_keywords("코딩", None, "JavaScript에서 클로저와 실행컨텍스트의 관계를 Node.js 기준으로 설명하시오")
    assert "javascript" in keywords
    assert "node.js" in keywords
    assert "실행컨텍스트의" in keywords


def test_keywords_are_unique_and_lowercase():
    keywords = extract_keywords("코딩", "React", "React React 리액트훅스 리액트훅스")
    assert keywords.count("react") == 1
    assert keywords.count("리액트훅스") == 1
    assert all(k == k.lower() for k in keywords)


def test_long_korean_runs_are_skipped():
    keywords = extract_keywords("코딩", None, "가나다라마바사아자차카타파하")
    assert keywords == ["코딩"]


def test_store_writes_row_and_vector():
    db, qdrant = FakeDatabase(), FakeQdrant()

    stored = asyncio.run(make_store(db, qdrant).store_problem_sample(reference()))

    assert stored.id in db.rows
    assert qdrant.indexed[stored.id] == {"sample_id": stored.id, "domain": "코딩", "subdomain": "React", "origin": "human"}
    assert stored.keywords[:2] == ["코딩", "react"]


def test_indexing_failure_removes_the_row():
    db = FakeDatabase()
    store = make_store(db, FakeQdrant(error=RuntimeError("qdrant unavailable")))

    with pytest.raises(RuntimeError):
        asyncio.run(store.store_problem_sample(reference()))

    assert db.rows == {}


def test_bulk_store_skips_unindexed_samples():
    db = FakeDatabase()
    store = make_store(db, FakeQdrant(error=RuntimeError("qdrant unavailable")))

    assert asyncio.run(store.bulk_store_samples([reference(), reference(subdomain="Vue")])) == []
    assert db.rows == {}


def test_count_by_origin():
    db = FakeDatabase(origin_counts=[("human", 3), ("generated", 1)])

    stats = asyncio.run(make_store(db, FakeQdrant()).count_by_origin())

    assert (stats.human, stats.generated, stats.total, stats.human_ratio) == (3, 1, 4, 75.0)


def test_count_by_origin_on_empty_store():
    stats = asyncio.run(make_store(FakeDatabase(), FakeQdrant()).count_by_origin())
    assert stats.total == 0
    assert stats.human_ratio == 0.0
