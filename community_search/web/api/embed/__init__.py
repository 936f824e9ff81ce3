"""Embedding API."""

from community_search.web.api.embed.views import router

__all__ = ["router"]
