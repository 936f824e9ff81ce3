"""Embedding API views."""

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from pydantic import ValidationError

from community_search.exceptions import CommunitySearchError, ComposeError
from community_search.services.embedding.client import EmbeddingClient
from community_search.services.vector_db.types import Record
from community_search.web.api.embed.schema import EmbedRequest, EmbedResponse
from community_search.web.dependencies import get_embedding_client

router = APIRouter()


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("", response_model=EmbedResponse, response_model_exclude_none=True)
async def create_embedding(
    body: EmbedRequest,
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
) -> EmbedResponse:
    """
    Generate embeddings for a text, a list of texts or a service record.

    :param body: exactly one of text, texts or record
    :param embedding_client: embedding client dependency
    :returns: vector(s) with their dimensionality
    :raises HTTPException: 400 on missing, ambiguous or invalid input
    """
    provided = body.provided()
    if len(provided) != 1:
        raise _bad_request("Provide exactly one of: text, texts, record")

    if body.model and body.model != embedding_client.model:
        logger.debug(
            f"Ignoring requested model {body.model}, using {embedding_client.model}"
        )

    try:
        if body.texts is not None:
            vectors = await embedding_client.embed_texts(body.texts)
            return EmbedResponse(
                embeddings=vectors,
                dimensions=len(vectors[0]),
                count=len(vectors),
                model=embedding_client.model,
            )

        if body.record is not None:
            if not isinstance(body.record, dict):
                raise _bad_request("Record must be an object")
            try:
                record = Record.model_validate({"id": "", **body.record})
            except ValidationError as e:
                raise _bad_request(f"Invalid record: {e.errors()[0]['msg']}")
            embedding = await embedding_client.embed_record(record)
            vector = embedding.vector
        else:
            vector = await embedding_client.embed_text(body.text)
    except ComposeError as e:
        raise _bad_request(e.message)
    except CommunitySearchError as e:
        logger.error(f"Embedding request failed: {e.message}")
        raise

    return EmbedResponse(
        embedding=vector,
        dimensions=len(vector),
        count=1,
        model=embedding_client.model,
    )
