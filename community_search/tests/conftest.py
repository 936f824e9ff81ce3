"""Pytest configuration and fixtures for community_search tests."""

import math
import random
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence

import pytest

from community_search.exceptions import QueryError
from community_search.services.embedding.client import EmbeddingClient
from community_search.services.embedding.scheduler import BackoffPolicy
from community_search.services.vector_db.types import Candidate, Embedding, Record

TEST_MODEL = "text-embedding-3-small"
TEST_DIMENSIONS = 1536


def vector_for(text: str, dimensions: int = TEST_DIMENSIONS) -> List[float]:
    """Deterministic unit vector for a text."""
    rng = random.Random(text)
    values = [rng.uniform(-1.0, 1.0) for _ in range(dimensions)]
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def make_record(index: int, **fields: Any) -> Record:
    """Build a service record with sensible defaults."""
    data = {
        "id": f"svc-{index}",
        "name": f"Service {index}",
        "description": f"Community service number {index}",
        "locations": ["Toronto"],
    }
    data.update(fields)
    return Record.model_validate(data)


class FakeEmbeddings:
    """Stand-in for ``AsyncOpenAI().embeddings``."""

    def __init__(self, dimensions: int, reverse: bool = False):
        self.dimensions = dimensions
        self.reverse = reverse
        self.calls: List[Dict[str, Any]] = []
        self._rules: List[List[Any]] = []

    def fail(self, match: str, error: Exception, times: Optional[int] = None) -> None:
        """Raise `error` for inputs containing `match`, `times` times (forever if None)."""
        self._rules.append([match, error, times])

    async def create(self, *, model: str, input: Any, encoding_format: Optional[str] = None):
        self.calls.append(
            {"model": model, "input": input, "encoding_format": encoding_format}
        )
        texts = [input] if isinstance(input, str) else list(input)
        for rule in self._rules:
            match, error, remaining = rule
            if remaining == 0:
                continue
            if any(match in text for text in texts):
                if remaining is not None:
                    rule[2] = remaining - 1
                raise error

        data = [
            SimpleNamespace(embedding=vector_for(text, self.dimensions), index=i)
            for i, text in enumerate(texts)
        ]
        if self.reverse:
            data.reverse()
        return SimpleNamespace(data=data, model=model)


class FakeOpenAI:
    """Minimal AsyncOpenAI double exposing ``embeddings.create``."""

    def __init__(self, dimensions: int = TEST_DIMENSIONS, reverse: bool = False):
        self.embeddings = FakeEmbeddings(dimensions, reverse=reverse)
        self.closed = False

    @property
    def calls(self) -> List[Dict[str, Any]]:
        return self.embeddings.calls

    async def close(self) -> None:
        self.closed = True


class InMemoryRecordStore:
    """RecordStore double with exact cosine search over stored vectors."""

    def __init__(self, records: Sequence[Record] = ()):
        self.records: Dict[str, Record] = {
            r.id: r.model_copy(deep=True) for r in records
        }
        self.reachable = True
        self.fail_queries = False
        self.fail_saves: set = set()
        self.scripted_candidates: Optional[List[Candidate]] = None
        self.ann_calls: List[Dict[str, Any]] = []
        self.saved: List[str] = []
        self.collections: List[Dict[str, Any]] = []

    async def test_connection(self) -> bool:
        return self.reachable

    async def ensure_collection(self, vector_size: int, recreate: bool = False) -> bool:
        self.collections.append({"vector_size": vector_size, "recreate": recreate})
        return len(self.collections) == 1 or recreate

    def _check(self) -> None:
        if not self.reachable:
            raise QueryError("store unreachable", collection="services")

    async def find_one(self, record_id: str) -> Optional[Record]:
        self._check()
        record = self.records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def find_records(self, missing_embedding: bool = False) -> List[Record]:
        self._check()
        return [
            r.model_copy(deep=True)
            for r in self.records.values()
            if not (missing_embedding and r.has_embedding)
        ]

    async def count_documents(self, with_embedding: Optional[bool] = None) -> int:
        self._check()
        if with_embedding is None:
            return len(self.records)
        return sum(1 for r in self.records.values() if r.has_embedding == with_embedding)

    async def save_embedding(self, record: Record, embedding: Embedding) -> None:
        self._check()
        if record.id in self.fail_saves:
            raise QueryError(f"write failed for {record.id}", collection="services")
        stored = self.records.setdefault(record.id, record.model_copy(deep=True))
        stored.embedding = list(embedding.vector)
        stored.embedding_model = embedding.model
        self.saved.append(record.id)

    async def upsert_records(self, records: Sequence[Record]) -> int:
        self._check()
        for record in records:
            existing = self.records.get(record.id)
            copy = record.model_copy(deep=True)
            if existing is not None and not copy.has_embedding:
                copy.embedding = existing.embedding
                copy.embedding_model = existing.embedding_model
            self.records[record.id] = copy
        return len(records)

    async def ann_query(
        self,
        query_vector: List[float],
        candidate_pool_size: int,
        top_k: int,
    ) -> List[Candidate]:
        self.ann_calls.append(
            {"candidate_pool_size": candidate_pool_size, "top_k": top_k}
        )
        if self.fail_queries:
            raise QueryError("vector query failed", collection="services")
        self._check()
        if self.scripted_candidates is not None:
            return list(self.scripted_candidates[:top_k])

        scored = [
            Candidate(
                record=r.model_copy(update={"embedding": None}),
                score=cosine(query_vector, r.embedding),
            )
            for r in self.records.values()
            if r.has_embedding
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:top_k]


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    """Fake provider returning deterministic 1536-d vectors."""
    return FakeOpenAI()


@pytest.fixture
def embedding_client(fake_openai: FakeOpenAI) -> EmbeddingClient:
    """Embedding client wired to the fake provider."""
    return EmbeddingClient(
        api_key="test-key",
        model=TEST_MODEL,
        openai_client=fake_openai,
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def no_wait_backoff() -> BackoffPolicy:
    """Retry policy without sleeping between attempts."""
    return BackoffPolicy(attempts=3, base_delay=0, max_delay=0, jitter=0)


class SleepRecorder:
    """Replacement for asyncio.sleep that records delays."""

    def __init__(self, crash_on_call: Optional[int] = None):
        self.delays: List[float] = []
        self.crash_on_call = crash_on_call

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.crash_on_call is not None and len(self.delays) == self.crash_on_call:
            raise RuntimeError("process killed")


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
