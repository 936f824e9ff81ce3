from typing import Optional

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel

from community_search.exceptions import CommunitySearchError
from community_search.services.embedding.client import EmbeddingClient
from community_search.services.vector_db.store import RecordStore
from community_search.settings import settings
from community_search.web.dependencies import get_embedding_client, get_record_store

router = APIRouter()


class HealthResponse(BaseModel):
    """Store reachability and embedding coverage."""

    status: str
    store_reachable: bool
    store_url: Optional[str] = None
    collection: str
    embedding_model: str
    total_records: Optional[int] = None
    embedded_records: Optional[int] = None


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: RecordStore = Depends(get_record_store),
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
) -> HealthResponse:
    """
    Checks the health of a project.

    It reports whether the vector store can be reached and how many
    records already carry an embedding.
    """
    response = HealthResponse(
        status="degraded",
        store_reachable=await store.test_connection(),
        store_url=settings.qdrant_location or str(settings.qdrant_url),
        collection=settings.qdrant_collection_name,
        embedding_model=embedding_client.model,
    )
    if not response.store_reachable:
        return response

    try:
        response.total_records = await store.count_documents()
        response.embedded_records = await store.count_documents(with_embedding=True)
    except CommunitySearchError as e:
        logger.error(f"Health check could not count records: {e.message}")
        return response

    response.status = "ok"
    return response
