"""Tests for community_search."""
