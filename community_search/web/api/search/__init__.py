"""Search API."""

from community_search.web.api.search.views import router

__all__ = ["router"]
