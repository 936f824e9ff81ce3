from typing import Awaitable, Callable

from fastapi import FastAPI
from loguru import logger

from community_search.exceptions import CommunitySearchError
from community_search.services.embedding.client import get_embedding_client
from community_search.services.vector_db.qdrant_client import get_record_store


async def _setup_vector_store(app: FastAPI) -> None:  # pragma: no cover
    """
    Create the shared record store and embedding client.

    The collection is created with the configured model's dimensionality
    if it does not exist yet. The OpenAI connection itself is opened
    lazily on the first embedding call.

    :param app: fastAPI application.
    """
    store = get_record_store()
    embedding_client = get_embedding_client()
    app.state.record_store = store
    app.state.embedding_client = embedding_client

    dimensions = embedding_client.dimensions
    if dimensions is None:
        logger.error(
            f"Unknown embedding model {embedding_client.model}, "
            "skipping collection initialization"
        )
        return

    try:
        await store.ensure_collection(vector_size=dimensions)
    except CommunitySearchError as e:
        logger.error(f"Failed to initialize collection: {e.message}")


def register_startup_event(
    app: FastAPI,
) -> Callable[[], Awaitable[None]]:  # pragma: no cover
    """
    Actions to run on application startup.

    This function uses fastAPI app to store data
    in the state, such as the record store.

    :param app: the fastAPI application.
    :return: function that actually performs actions.
    """

    @app.on_event("startup")
    async def _startup() -> None:  # noqa: WPS430
        app.middleware_stack = None
        await _setup_vector_store(app)
        app.middleware_stack = app.build_middleware_stack()

    return _startup


def register_shutdown_event(
    app: FastAPI,
) -> Callable[[], Awaitable[None]]:  # pragma: no cover
    """
    Actions to run on application's shutdown.

    :param app: fastAPI application.
    :return: function that actually performs actions.
    """

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # noqa: WPS430
        embedding_client = getattr(app.state, "embedding_client", None)
        if embedding_client is not None:
            await embedding_client.close()

    return _shutdown
