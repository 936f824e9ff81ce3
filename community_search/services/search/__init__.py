"""Semantic and hybrid search over service records."""

from community_search.services.search.engine import (
    VectorSearchEngine,
    matches_text,
    rank_results,
)
from community_search.services.search.similar import SimilarRecordFinder
from community_search.services.search.types import (
    SearchMode,
    SearchOptions,
    SearchResult,
)

__all__ = [
    "SearchMode",
    "SearchOptions",
    "SearchResult",
    "SimilarRecordFinder",
    "VectorSearchEngine",
    "matches_text",
    "rank_results",
]
