"""Search API views."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger

from community_search.exceptions import CommunitySearchError
from community_search.services.search.engine import VectorSearchEngine
from community_search.services.search.types import SearchMode, SearchOptions
from community_search.settings import settings
from community_search.web.api.search.schema import (
    SearchParams,
    SearchRequest,
    SearchResponse,
)
from community_search.web.dependencies import get_search_engine

router = APIRouter()


async def _run_search(
    engine: VectorSearchEngine,
    query: str,
    options: SearchOptions,
) -> SearchResponse:
    if not query or not query.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query is required",
        )

    try:
        results = await engine.search(query, options)
    except CommunitySearchError as e:
        logger.error(f"Search failed for '{query}': {e.message}")
        raise

    return SearchResponse(
        query=query,
        results=results,
        total_results=len(results),
        search_type=options.mode,
        params=SearchParams(
            limit=options.limit,
            min_score=options.resolved_min_score(),
            locations=options.locations,
            subtopic_ids=options.subtopic_ids,
        ),
    )


@router.post("", response_model=SearchResponse)
async def search_services(
    body: SearchRequest,
    engine: VectorSearchEngine = Depends(get_search_engine),
) -> SearchResponse:
    """
    Search services by meaning, optionally boosted by literal text matches.

    :param body: query, limit, score floor, filters and search type
    :param engine: search engine dependency
    :returns: ranked results and the effective parameters
    :raises HTTPException: 400 on an empty query
    :raises SearchError: if the search itself fails
    """
    options = SearchOptions(
        limit=body.limit,
        min_score=body.min_score,
        locations=body.locations,
        subtopic_ids=body.subtopic_ids,
        mode=body.search_type,
    )
    return await _run_search(engine, body.query, options)


@router.get("", response_model=SearchResponse)
async def search_services_simple(
    q: str = Query("", description="Free-text query"),
    limit: int = Query(settings.search_default_limit, ge=1, le=100),
    min_score: Optional[float] = Query(None, alias="minScore"),
    engine: VectorSearchEngine = Depends(get_search_engine),
) -> SearchResponse:
    """
    Simple vector search through query parameters.

    :param q: query text
    :param limit: maximum number of results
    :param min_score: score floor
    :param engine: search engine dependency
    :returns: ranked results
    """
    options = SearchOptions(limit=limit, min_score=min_score, mode=SearchMode.VECTOR)
    return await _run_search(engine, q, options)
