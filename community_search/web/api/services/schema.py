"""Schema for service record API."""

from typing import List

from community_search.services.search.types import SearchResult
from community_search.services.vector_db.types import CamelModel, Record


class ServiceResponse(CamelModel):
    """A single stored service record."""

    success: bool = True
    service: Record
    has_embedding: bool


class SimilarServicesResponse(CamelModel):
    """Neighbours of a stored service record."""

    success: bool = True
    service_id: str
    results: List[SearchResult]
    total_results: int
