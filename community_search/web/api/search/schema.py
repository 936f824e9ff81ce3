"""Schema for search API."""

from typing import List, Optional

from pydantic import Field

from community_search.services.search.types import SearchMode, SearchResult
from community_search.services.vector_db.types import CamelModel
from community_search.settings import settings


class SearchRequest(CamelModel):
    """Request body for a search."""

    query: str = Field("", description="Free-text query")
    limit: int = Field(settings.search_default_limit, ge=1, le=100)
    min_score: Optional[float] = Field(
        None, description="Score floor; defaults to 0.5 for vector and 0.3 for hybrid"
    )
    locations: List[str] = Field(default_factory=list)
    subtopic_ids: List[str] = Field(default_factory=list)
    search_type: SearchMode = SearchMode.VECTOR


class SearchParams(CamelModel):
    """Effective parameters echoed back to the caller."""

    limit: int
    min_score: float
    locations: List[str] = Field(default_factory=list)
    subtopic_ids: List[str] = Field(default_factory=list)


class SearchResponse(CamelModel):
    """Response model for a search."""

    success: bool = True
    query: str
    results: List[SearchResult]
    total_results: int
    search_type: SearchMode
    params: SearchParams
