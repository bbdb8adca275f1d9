"""Configuration package for cached_repo."""

from .config import CachedRepoConfig, get_config, reload_config

__all__ = ["CachedRepoConfig", "get_config", "reload_config"]
