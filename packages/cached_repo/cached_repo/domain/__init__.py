"""Domain layer for cached_repo."""
