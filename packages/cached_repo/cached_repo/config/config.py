"""Centralized configuration management for cached_repo.

This module provides a centralized configuration system that supports:
- Environment variable overrides
- Default values with validation
- Type safety using Pydantic
- Hierarchical configuration structure
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheConfig(BaseModel):
    """Entry store configuration."""

    default_ttl_seconds: float = Field(
        default=180.0, gt=0, le=86400, description="Default entry time to live in seconds"
    )

    max_entries: int | None = Field(
        default=None,
        ge=1,
        le=10_000_000,
        description="Entry count above which least recently used entries are evicted; "
        "None disables eviction",
    )

    cleanup_interval_seconds: float = Field(
        default=60.0, gt=0, le=3600, description="Interval of the expired entry sweep in seconds"
    )


class LoaderConfig(BaseModel):
    """Single-flight loader configuration."""

    default_wait_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        le=3600,
        description="Default bound on how long a caller waits for a population; "
        "None waits indefinitely",
    )


class KeyConfig(BaseModel):
    """Cache key configuration."""

    max_key_length: int = Field(
        default=256, ge=8, le=4096, description="Longest accepted key name in characters"
    )


class RepositoryConfig(BaseModel):
    """Cached repository configuration."""

    insert_batch_size: int = Field(
        default=200, ge=1, le=100_000, description="Entities saved per batch by insert_many"
    )


class CachedRepoConfig(BaseSettings):
    """Main cached_repo configuration.

    All configuration values can be overridden using environment variables
    with the prefix CACHED_REPO_ (e.g., CACHED_REPO_CACHE__DEFAULT_TTL_SECONDS).
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHED_REPO_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-configurations
    cache: CacheConfig = Field(default_factory=CacheConfig)
    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    keys: KeyConfig = Field(default_factory=KeyConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)

    # Feature flags
    enable_auto_cleanup: bool = Field(
        default=True, description="Run the periodic expired entry sweep in async caches"
    )

    enable_metrics: bool = Field(default=True, description="Export Prometheus cache metrics")

    # Computed properties
    @property
    def default_ttl(self) -> timedelta:
        """Get default entry TTL as timedelta."""
        return timedelta(seconds=self.cache.default_ttl_seconds)

    @property
    def cleanup_interval(self) -> timedelta:
        """Get expired entry sweep interval as timedelta."""
        return timedelta(seconds=self.cache.cleanup_interval_seconds)


@lru_cache(maxsize=1)
def get_config() -> CachedRepoConfig:
    """Get the singleton configuration instance.

    This function returns a cached configuration instance that reads from
    environment variables and configuration files.

    Returns:
        CachedRepoConfig: The configuration instance
    """
    return CachedRepoConfig()


def reload_config() -> CachedRepoConfig:
    """Reload configuration from environment.

    This clears the cache and creates a new configuration instance.

    Returns:
        CachedRepoConfig: The new configuration instance
    """
    get_config.cache_clear()
    return get_config()
