"""Service record API."""

from community_search.web.api.services.views import router

__all__ = ["router"]
