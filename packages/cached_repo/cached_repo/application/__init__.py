"""Application layer for cached_repo."""
