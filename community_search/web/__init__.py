"""community_search web application."""
