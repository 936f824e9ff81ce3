"""Search options and results."""

import enum
from typing import List, Optional

from pydantic import BaseModel, Field

from community_search.services.vector_db.types import CamelModel, Record
from community_search.settings import settings


class SearchMode(str, enum.Enum):
    """Ranking strategy for a search request."""

    VECTOR = "vector"
    HYBRID = "hybrid"


class SearchOptions(BaseModel):
    """Parameters of a single search."""

    limit: int = Field(default=settings.search_default_limit, ge=1)
    min_score: Optional[float] = None
    locations: List[str] = Field(default_factory=list)
    subtopic_ids: List[str] = Field(default_factory=list)
    mode: SearchMode = SearchMode.VECTOR

    def resolved_min_score(self) -> float:
        """Score floor for this request, falling back to the per-mode default."""
        if self.min_score is not None:
            return self.min_score
        if self.mode == SearchMode.HYBRID:
            return settings.hybrid_min_score
        return settings.vector_min_score


class SearchResult(CamelModel):
    """A ranked search hit."""

    record: Record
    # Rounded for display; ranking uses `score`
    similarity: float
    score: float
    vector_score: float
    rank: int
