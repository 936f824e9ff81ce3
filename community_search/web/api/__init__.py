"""community_search API package."""
