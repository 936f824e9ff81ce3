"""community_search package."""
