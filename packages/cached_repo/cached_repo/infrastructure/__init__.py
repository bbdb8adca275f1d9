"""Infrastructure layer for cached_repo."""
