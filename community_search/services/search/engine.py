"""Vector and hybrid search over embedded service records."""

import re
import time
from typing import List, Optional

from loguru import logger

from community_search.exceptions import (
    InvalidInputError,
    MissingCredentialsError,
    ProviderError,
    QueryError,
    SearchError,
)
from community_search.services.embedding.client import EmbeddingClient
from community_search.services.search.types import SearchMode, SearchOptions, SearchResult
from community_search.services.vector_db.query import (
    HYBRID_FETCH_FACTOR,
    HYBRID_POOL_FACTOR,
    HYBRID_POOL_MIN,
    SortOrder,
    VECTOR_FETCH_FACTOR,
    VECTOR_POOL_FACTOR,
    VECTOR_POOL_MIN,
    VectorQuery,
    VectorQueryBuilder,
)
from community_search.services.vector_db.store import RecordStore
from community_search.services.vector_db.types import Candidate, Record
from community_search.settings import settings


def matches_text(query: str, record: Record) -> bool:
    """
    Case-insensitive literal substring match on name and description.

    :param query: raw query string
    :param record: candidate record
    :returns: True if the query occurs in the record's text
    """
    haystack = f"{record.name} {record.description}"
    return re.search(re.escape(query), haystack, re.IGNORECASE) is not None


_SORT_KEYS = {
    SortOrder.SIMILARITY_DESC: lambda r: (r.score, r.vector_score),
}


def rank_results(scored: List[SearchResult], vector_query: VectorQuery) -> List[SearchResult]:
    """
    Order by the query's sort, keep the first `limit`, number them 1..k.

    The sort is stable, so ties keep candidate order.
    """
    ordered = sorted(scored, key=_SORT_KEYS[vector_query.sort], reverse=True)
    ranked = ordered[: vector_query.limit]
    for rank, result in enumerate(ranked, start=1):
        result.rank = rank
    return ranked


class VectorSearchEngine:
    """Ranks records against a free-text query."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        store: RecordStore,
        text_boost: float = settings.hybrid_text_boost,
    ):
        """
        Initialize the search engine.

        :param embedding_client: client used to embed queries
        :param store: record store with an ANN query primitive
        :param text_boost: flat boost for lexical matches in hybrid mode
        """
        self.embedding_client = embedding_client
        self.store = store
        self.text_boost = text_boost

    async def _embed_query(self, query: str, mode: SearchMode) -> List[float]:
        try:
            return await self.embedding_client.embed_text(query)
        except (ProviderError, MissingCredentialsError) as e:
            raise SearchError(f"Failed to embed query: {e.message}", search_type=mode.value) from e

    async def _candidates(self, vector_query: VectorQuery, mode: SearchMode) -> List[Candidate]:
        try:
            return await self.store.ann_query(
                vector_query.vector,
                candidate_pool_size=vector_query.candidate_pool_size,
                top_k=vector_query.top_k,
            )
        except QueryError as e:
            raise SearchError(f"Vector query failed: {e.message}", search_type=mode.value) from e

    async def search(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
    ) -> List[SearchResult]:
        """
        Search records with the strategy selected in the options.

        :param query: free-text query
        :param options: limit, score floor, filters and mode
        :returns: ranked results, possibly empty
        :raises InvalidInputError: on an empty query
        :raises SearchError: on provider or store failure
        """
        options = options or SearchOptions()
        if not isinstance(query, str) or not query.strip():
            raise InvalidInputError("Query is required")

        start_time = time.time()
        if options.mode == SearchMode.HYBRID:
            results = await self.hybrid_search(query, options)
        else:
            results = await self.vector_search(query, options)

        logger.info(
            f"{options.mode.value} search for '{query}' returned {len(results)} results "
            f"in {time.time() - start_time:.2f}s"
        )
        return results

    async def vector_search(self, query: str, options: SearchOptions) -> List[SearchResult]:
        """
        Rank candidates by cosine similarity alone.

        :param query: free-text query
        :param options: search options
        :returns: ranked results
        """
        vector = await self._embed_query(query, SearchMode.VECTOR)
        vector_query = (
            VectorQueryBuilder(vector)
            .limit(options.limit)
            .over_fetch(VECTOR_POOL_MIN, VECTOR_POOL_FACTOR, VECTOR_FETCH_FACTOR)
            .min_score(options.resolved_min_score())
            .locations(options.locations)
            .subtopic_ids(options.subtopic_ids)
            .build()
        )
        candidates = await self._candidates(vector_query, SearchMode.VECTOR)
        logger.debug(f"Vector search: {len(candidates)} candidates before filtering")

        scored = [
            SearchResult(
                record=c.record,
                similarity=round(c.score, 2),
                score=c.score,
                vector_score=c.score,
                rank=0,
            )
            for c in candidates
            if vector_query.filters.matches(c.record, c.score)
        ]
        return rank_results(scored, vector_query)

    async def hybrid_search(self, query: str, options: SearchOptions) -> List[SearchResult]:
        """
        Blend cosine similarity with a boost for literal text matches.

        The score floor applies to the vector score before the boost.

        :param query: free-text query
        :param options: search options
        :returns: ranked results
        """
        vector = await self._embed_query(query, SearchMode.HYBRID)
        vector_query = (
            VectorQueryBuilder(vector)
            .limit(options.limit)
            .over_fetch(HYBRID_POOL_MIN, HYBRID_POOL_FACTOR, HYBRID_FETCH_FACTOR)
            .min_score(options.resolved_min_score())
            .locations(options.locations)
            .subtopic_ids(options.subtopic_ids)
            .build()
        )
        candidates = await self._candidates(vector_query, SearchMode.HYBRID)
        logger.debug(f"Hybrid search: {len(candidates)} candidates before filtering")

        scored = []
        for candidate in candidates:
            if not vector_query.filters.matches(candidate.record, candidate.score):
                continue
            boost = self.text_boost if matches_text(query, candidate.record) else 0.0
            score = candidate.score + boost
            scored.append(
                SearchResult(
                    record=candidate.record,
                    similarity=round(score, 2),
                    score=score,
                    vector_score=candidate.score,
                    rank=0,
                )
            )
        return rank_results(scored, vector_query)
