"""Find records similar to an existing one."""

from typing import List

from loguru import logger

from community_search.exceptions import (
    NoEmbeddingError,
    NotFoundError,
    QueryError,
    SearchError,
)
from community_search.services.search.engine import rank_results
from community_search.services.search.types import SearchResult
from community_search.services.vector_db.query import (
    VECTOR_POOL_FACTOR,
    VECTOR_POOL_MIN,
    VectorQueryBuilder,
)
from community_search.services.vector_db.store import RecordStore


class SimilarRecordFinder:
    """Looks up neighbours of a record using its stored embedding."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def find_similar(self, record_id: str, limit: int = 5) -> List[SearchResult]:
        """
        Find records similar to a stored record.

        :param record_id: id of the source record
        :param limit: maximum number of neighbours
        :returns: ranked neighbours, never including the source record
        :raises NotFoundError: if the record does not exist
        :raises NoEmbeddingError: if the record has no stored embedding
        :raises SearchError: if the store cannot be queried
        """
        try:
            record = await self.store.find_one(record_id)
        except QueryError as e:
            raise SearchError(f"Find similar services failed: {e.message}") from e
        if record is None:
            raise NotFoundError(record_id)
        if not record.has_embedding:
            raise NoEmbeddingError(record_id)

        # One extra so the source record can be dropped
        vector_query = (
            VectorQueryBuilder(record.embedding)
            .limit(limit)
            .over_fetch(VECTOR_POOL_MIN, VECTOR_POOL_FACTOR, 1)
            .top_k(limit + 1)
            .exclude(record_id)
            .build()
        )
        try:
            candidates = await self.store.ann_query(
                vector_query.vector,
                candidate_pool_size=vector_query.candidate_pool_size,
                top_k=vector_query.top_k,
            )
        except QueryError as e:
            raise SearchError(f"Find similar services failed: {e.message}") from e

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
        results = rank_results(scored, vector_query)
        logger.debug(f"Found {len(results)} services similar to {record_id}")
        return results
