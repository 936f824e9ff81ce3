"""Service record API views."""

from fastapi import APIRouter, Depends, Query

from community_search.exceptions import NotFoundError
from community_search.services.search.similar import SimilarRecordFinder
from community_search.services.vector_db.store import RecordStore
from community_search.web.api.services.schema import (
    ServiceResponse,
    SimilarServicesResponse,
)
from community_search.web.dependencies import get_record_store, get_similar_finder

router = APIRouter()


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: str,
    store: RecordStore = Depends(get_record_store),
) -> ServiceResponse:
    """
    Fetch a service record by id.

    :param service_id: record id
    :param store: record store dependency
    :returns: the record, without its vector
    :raises NotFoundError: if the record does not exist
    """
    record = await store.find_one(service_id)
    if record is None:
        raise NotFoundError(service_id)
    return ServiceResponse(service=record, has_embedding=record.has_embedding)


@router.get("/{service_id}/similar", response_model=SimilarServicesResponse)
async def get_similar_services(
    service_id: str,
    limit: int = Query(5, ge=1, le=50),
    finder: SimilarRecordFinder = Depends(get_similar_finder),
) -> SimilarServicesResponse:
    """
    Find services similar to a stored one.

    :param service_id: source record id
    :param limit: maximum number of neighbours
    :param finder: similar-record finder dependency
    :returns: ranked neighbours
    :raises NotFoundError: if the record does not exist
    :raises NoEmbeddingError: if the record has no embedding
    """
    results = await finder.find_similar(service_id, limit=limit)
    return SimilarServicesResponse(
        service_id=service_id,
        results=results,
        total_results=len(results),
    )
