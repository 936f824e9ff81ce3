from importlib import metadata

from fastapi import FastAPI, Request
from fastapi.responses import UJSONResponse
from loguru import logger

from community_search.exceptions import CommunitySearchError
from community_search.logging_config import InterceptHandler, configure_logging
from community_search.web.api.router import api_router
from community_search.web.lifetime import register_shutdown_event, register_startup_event


async def community_search_error_handler(
    request: Request,
    exc: CommunitySearchError,
) -> UJSONResponse:
    """
    Render a domain error as JSON with its status code.

    :param request: failed request
    :param exc: raised domain error
    :returns: error body from the exception
    """
    logger.warning(
        f"{request.method} {request.url.path} failed with {exc.code}: {exc.message}"
    )
    return UJSONResponse(status_code=exc.status_code, content=exc.to_dict())


def get_app() -> FastAPI:
    """
    Get FastAPI application.

    This is the main constructor of an application.

    :return: application.
    """
    # Configure logging first
    configure_logging()

    # Intercept standard library logging
    interceptor = InterceptHandler()
    interceptor.intercept_all_loggers()

    logger.info("Starting community search application")

    app = FastAPI(
        title="community_search",
        version=metadata.version("community_search"),
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        default_response_class=UJSONResponse,
    )

    # Adds startup and shutdown events.
    register_startup_event(app)
    register_shutdown_event(app)

    app.add_exception_handler(CommunitySearchError, community_search_error_handler)

    # Main router for the API.
    app.include_router(router=api_router, prefix="/api")

    return app
