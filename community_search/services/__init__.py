"""Services for community_search."""
