"""API for checking project status."""

from community_search.web.api.monitoring.views import router

__all__ = ["router"]
