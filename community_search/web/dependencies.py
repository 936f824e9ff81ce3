"""FastAPI dependencies for the shared store and embedding client."""

from fastapi import Depends, Request

from community_search.services.embedding.client import EmbeddingClient
from community_search.services.search.engine import VectorSearchEngine
from community_search.services.search.similar import SimilarRecordFinder
from community_search.services.vector_db.store import RecordStore
from community_search.settings import settings


def get_record_store(request: Request) -> RecordStore:
    """
    Get the record store created at startup.

    :param request: current request
    :returns: RecordStore instance
    """
    return request.app.state.record_store


def get_embedding_client(request: Request) -> EmbeddingClient:
    """
    Get the embedding client created at startup.

    :param request: current request
    :returns: EmbeddingClient instance
    """
    return request.app.state.embedding_client


def get_search_engine(
    store: RecordStore = Depends(get_record_store),
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
) -> VectorSearchEngine:
    return VectorSearchEngine(
        embedding_client=embedding_client,
        store=store,
        text_boost=settings.hybrid_text_boost,
    )


def get_similar_finder(
    store: RecordStore = Depends(get_record_store),
) -> SimilarRecordFinder:
    return SimilarRecordFinder(store)
