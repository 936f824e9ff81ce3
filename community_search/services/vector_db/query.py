"""Typed construction of ANN queries and their post-filters."""

import enum
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from community_search.services.vector_db.types import Record

# Over-fetch so that post-filtering still leaves `limit` results
VECTOR_POOL_MIN = 100
VECTOR_POOL_FACTOR = 5
VECTOR_FETCH_FACTOR = 2
HYBRID_POOL_MIN = 200
HYBRID_POOL_FACTOR = 10
HYBRID_FETCH_FACTOR = 5


class SortOrder(str, enum.Enum):
    """Final ordering applied to scored candidates."""

    # score, then vector score, both descending; full ties keep candidate order
    SIMILARITY_DESC = "similarity_desc"


@dataclass(frozen=True)
class QueryFilters:
    """Post-filters applied to ANN candidates in application code."""

    min_score: Optional[float] = None
    locations: Tuple[str, ...] = ()
    subtopic_ids: Tuple[str, ...] = ()
    exclude_ids: Tuple[str, ...] = ()

    def matches(self, record: Record, score: float) -> bool:
        """
        Check a candidate against every configured filter.

        :param record: candidate record
        :param score: unrounded score the floor applies to
        :returns: True if the candidate survives
        """
        if self.min_score is not None and score < self.min_score:
            return False
        if record.id in self.exclude_ids:
            return False
        if self.locations and not set(self.locations) & set(record.locations):
            return False
        if self.subtopic_ids and not set(self.subtopic_ids) & set(record.subtopic_ids):
            return False
        return True


@dataclass(frozen=True)
class VectorQuery:
    """Everything the store and the ranker need to answer one query."""

    vector: List[float]
    filters: QueryFilters
    limit: int
    candidate_pool_size: int
    top_k: int
    sort: SortOrder = SortOrder.SIMILARITY_DESC


class VectorQueryBuilder:
    """
    Fluent builder for :class:`VectorQuery`.

    Usage:
        query = (
            VectorQueryBuilder(vector)
            .limit(10)
            .over_fetch(pool_min=100, pool_factor=5, fetch_factor=2)
            .min_score(0.5)
            .locations(["Halton"])
            .build()
        )
    """

    def __init__(self, vector: Sequence[float]):
        if not vector:
            raise ValueError("Query vector must not be empty")
        self._vector = list(vector)
        self._limit = 10
        self._pool_min = VECTOR_POOL_MIN
        self._pool_factor = VECTOR_POOL_FACTOR
        self._fetch_factor = VECTOR_FETCH_FACTOR
        self._top_k: Optional[int] = None
        self._min_score: Optional[float] = None
        self._locations: Tuple[str, ...] = ()
        self._subtopic_ids: Tuple[str, ...] = ()
        self._exclude_ids: Tuple[str, ...] = ()

    def limit(self, limit: int) -> "VectorQueryBuilder":
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self._limit = limit
        return self

    def over_fetch(
        self,
        pool_min: int,
        pool_factor: int,
        fetch_factor: int,
    ) -> "VectorQueryBuilder":
        self._pool_min = pool_min
        self._pool_factor = pool_factor
        self._fetch_factor = fetch_factor
        return self

    def top_k(self, top_k: int) -> "VectorQueryBuilder":
        """Fix the number of candidates requested instead of limit * fetch factor."""
        self._top_k = top_k
        return self

    def min_score(self, min_score: Optional[float]) -> "VectorQueryBuilder":
        self._min_score = min_score
        return self

    def locations(self, locations: Optional[Iterable[str]]) -> "VectorQueryBuilder":
        self._locations = tuple(locations or ())
        return self

    def subtopic_ids(self, subtopic_ids: Optional[Iterable[str]]) -> "VectorQueryBuilder":
        self._subtopic_ids = tuple(subtopic_ids or ())
        return self

    def exclude(self, *record_ids: str) -> "VectorQueryBuilder":
        self._exclude_ids = self._exclude_ids + tuple(record_ids)
        return self

    def build(self) -> VectorQuery:
        top_k = self._top_k or self._limit * self._fetch_factor
        candidate_pool_size = max(self._pool_min, self._limit * self._pool_factor, top_k)
        return VectorQuery(
            vector=self._vector,
            filters=QueryFilters(
                min_score=self._min_score,
                locations=self._locations,
                subtopic_ids=self._subtopic_ids,
                exclude_ids=self._exclude_ids,
            ),
            limit=self._limit,
            candidate_pool_size=candidate_pool_size,
            top_k=top_k,
        )
