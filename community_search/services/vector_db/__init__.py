"""Vector database services module."""

# Export types first to avoid circular imports
from community_search.services.vector_db.types import (
    Candidate,
    Embedding,
    Record,
    RecordDetails,
)
from community_search.services.vector_db.query import (
    QueryFilters,
    VectorQuery,
    VectorQueryBuilder,
)
from community_search.services.vector_db.store import RecordStore

# Export the client implementations
from community_search.services.vector_db.qdrant_client import (
    QdrantRecordStore,
    get_record_store,
)

__all__ = [
    "Candidate",
    "Embedding",
    "QdrantRecordStore",
    "QueryFilters",
    "Record",
    "RecordDetails",
    "RecordStore",
    "VectorQuery",
    "VectorQueryBuilder",
    "get_record_store",
]
