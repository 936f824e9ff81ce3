"""Tests for vector and hybrid search."""

import pytest

from community_search.exceptions import InvalidInputError, ProviderError, QueryError, SearchError
from community_search.services.search.engine import (
    VectorSearchEngine,
    matches_text,
    rank_results,
)
from community_search.services.search.types import SearchMode, SearchOptions, SearchResult
from community_search.services.vector_db.query import SortOrder, VectorQueryBuilder
from community_search.services.vector_db.types import Candidate, Record
from community_search.settings import settings


def candidate(record_id, score, name="", description="", **fields):
    record = Record(id=record_id, name=name, description=description, **fields)
    return Candidate(record=record, score=score)


@pytest.fixture
def engine(embedding_client, store) -> VectorSearchEngine:
    return VectorSearchEngine(embedding_client=embedding_client, store=store, text_boost=0.2)


def ids(results):
    return [r.record.id for r in results]


class TestVectorSearch:
    """Test pure cosine ranking."""

    @pytest.mark.asyncio
    async def test_filters_and_ranks(self, engine, store):
        store.scripted_candidates = [
            candidate("a", 0.9),
            candidate("b", 0.4),
            candidate("c", 0.7),
            candidate("d", 0.55),
        ]

        results = await engine.search("food")

        assert ids(results) == ["a", "c", "d"]
        assert [r.rank for r in results] == [1, 2, 3]
        assert all(r.similarity >= 0.5 for r in results)
        assert store.ann_calls == [{"candidate_pool_size": 100, "top_k": 20}]

    @pytest.mark.asyncio
    async def test_truncates_to_limit(self, engine, store):
        store.scripted_candidates = [candidate(str(i), 0.9 - i * 0.01) for i in range(10)]

        results = await engine.search("food", SearchOptions(limit=3))

        assert ids(results) == ["0", "1", "2"]
        assert store.ann_calls[0]["top_k"] == 6

    @pytest.mark.asyncio
    async def test_similarity_rounded_for_display(self, engine, store):
        store.scripted_candidates = [candidate("a", 0.87654)]

        results = await engine.search("food")

        assert results[0].similarity == 0.88
        assert results[0].score == 0.87654
        assert results[0].vector_score == 0.87654

    @pytest.mark.asyncio
    async def test_location_and_subtopic_filters(self, engine, store):
        store.scripted_candidates = [
            candidate("a", 0.9, locations=["Toronto"], subtopic_ids=["food"]),
            candidate("b", 0.8, locations=["Peel"], subtopic_ids=["food"]),
            candidate("c", 0.7, locations=["Toronto"], subtopic_ids=["housing"]),
        ]
        options = SearchOptions(locations=["Toronto", "York"], subtopic_ids=["food"])

        results = await engine.search("food", options)

        assert ids(results) == ["a"]

    @pytest.mark.asyncio
    async def test_explicit_min_score(self, engine, store):
        store.scripted_candidates = [candidate("a", 0.9), candidate("b", 0.35)]

        results = await engine.search("food", SearchOptions(min_score=0.2))

        assert ids(results) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_ties_keep_candidate_order(self, engine, store):
        store.scripted_candidates = [candidate("x", 0.8), candidate("y", 0.8), candidate("z", 0.8)]

        results = await engine.search("food")

        assert ids(results) == ["x", "y", "z"]

    @pytest.mark.asyncio
    async def test_empty_result_is_success(self, engine, store):
        store.scripted_candidates = []
        assert await engine.search("nothing matches") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_empty_query(self, engine, fake_openai, query):
        with pytest.raises(InvalidInputError):
            await engine.search(query)
        assert fake_openai.calls == []


class TestHybridSearch:
    """Test lexical boosting on top of vector similarity."""

    @pytest.mark.asyncio
    async def test_boost_reorders_results(self, engine, store):
        store.scripted_candidates = [
            candidate("shelter", 0.75, name="Night Shelter"),
            candidate("bank", 0.6, name="Downtown Food Bank"),
            candidate("pantry", 0.25, name="Food Bank Pantry"),
        ]

        results = await engine.search("food bank", SearchOptions(mode=SearchMode.HYBRID))

        assert ids(results) == ["bank", "shelter"]
        assert results[0].similarity == 0.8
        assert results[0].vector_score == 0.6
        assert results[1].similarity == 0.75
        assert store.ann_calls == [{"candidate_pool_size": 200, "top_k": 50}]

    @pytest.mark.asyncio
    async def test_boost_only_when_text_matches(self, engine, store):
        store.scripted_candidates = [
            candidate("match", 0.5, description="Hot MEALS every day"),
            candidate("other", 0.5, name="Clinic"),
        ]

        results = await engine.search("meals", SearchOptions(mode=SearchMode.HYBRID))
        by_id = {r.record.id: r for r in results}

        assert by_id["match"].score > by_id["match"].vector_score
        assert by_id["other"].score == by_id["other"].vector_score

    @pytest.mark.asyncio
    async def test_default_floor_applies_to_vector_score(self, engine, store):
        store.scripted_candidates = [
            candidate("low", 0.29, name="Food Bank"),
            candidate("ok", 0.31, name="Clinic"),
        ]

        results = await engine.search("food bank", SearchOptions(mode=SearchMode.HYBRID))

        assert ids(results) == ["ok"]

    @pytest.mark.asyncio
    async def test_ties_broken_by_vector_score(self, embedding_client, store):
        engine = VectorSearchEngine(embedding_client, store, text_boost=0.25)
        store.scripted_candidates = [
            candidate("boosted", 0.5, name="Food Bank"),
            candidate("plain", 0.75, name="Clinic"),
        ]

        results = await engine.search("food", SearchOptions(mode=SearchMode.HYBRID))

        assert results[0].score == results[1].score == 0.75
        assert ids(results) == ["plain", "boosted"]

    @pytest.mark.asyncio
    async def test_query_is_matched_literally(self, engine, store):
        store.scripted_candidates = [candidate("cpp", 0.5, name="C++ tutoring")]

        results = await engine.search("c++", SearchOptions(mode=SearchMode.HYBRID))

        assert results[0].similarity == 0.7
        assert results[0].score > results[0].vector_score


class TestSearchErrors:
    """Test error wrapping."""

    @pytest.mark.asyncio
    async def test_provider_failure(self, engine, fake_openai):
        fake_openai.embeddings.fail("food", ProviderError("boom"))

        with pytest.raises(SearchError) as exc_info:
            await engine.search("food")
        assert isinstance(exc_info.value.__cause__, ProviderError)

    @pytest.mark.asyncio
    async def test_store_failure(self, engine, store):
        store.fail_queries = True

        with pytest.raises(SearchError) as exc_info:
            await engine.search("food", SearchOptions(mode=SearchMode.HYBRID))
        assert isinstance(exc_info.value.__cause__, QueryError)
        assert exc_info.value.details["search_type"] == "hybrid"


class TestRankResults:
    """Test final ordering of scored candidates."""

    def result(self, record_id, score, vector_score):
        return SearchResult(
            record=Record(id=record_id),
            similarity=round(score, 2),
            score=score,
            vector_score=vector_score,
            rank=0,
        )

    def test_uses_query_sort_and_limit(self):
        vector_query = VectorQueryBuilder([0.1, 0.2]).limit(2).build()
        assert vector_query.sort == SortOrder.SIMILARITY_DESC
        scored = [
            self.result("a", 0.6, 0.6),
            self.result("b", 0.8, 0.6),
            self.result("c", 0.8, 0.7),
        ]

        ranked = rank_results(scored, vector_query)

        assert ids(ranked) == ["c", "b"]
        assert [r.rank for r in ranked] == [1, 2]


class TestOptions:
    """Test option defaults."""

    def test_min_score_defaults_by_mode(self):
        assert SearchOptions().resolved_min_score() == settings.vector_min_score == 0.5
        hybrid = SearchOptions(mode=SearchMode.HYBRID)
        assert hybrid.resolved_min_score() == settings.hybrid_min_score == 0.3

    def test_explicit_min_score_wins(self):
        assert SearchOptions(min_score=0.1, mode=SearchMode.HYBRID).resolved_min_score() == 0.1

    def test_matches_text_is_case_insensitive(self):
        record = Record(id="1", name="Food Bank", description="Open daily")
        assert matches_text("FOOD", record)
        assert matches_text("bank open", record)
        assert not matches_text("shelter", record)
