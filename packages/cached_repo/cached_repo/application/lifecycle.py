"""Process-wide cache lifecycle.

The process owns at most one shared ``ReadThroughCache``. It is created
explicitly at startup with ``initialize_cache`` and torn down at shutdown with
``shutdown_cache``; nothing creates it implicitly on first use.
"""

from __future__ import annotations

import threading

from cached_repo.application.services import ReadThroughCache
from cached_repo.config import CachedRepoConfig
from cached_repo.domain.exceptions import CacheNotInitializedError, ConflictError
from cached_repo.infrastructure.logging import get_logger

logger = get_logger(__name__)

_cache: ReadThroughCache | None = None
_lock = threading.Lock()


def initialize_cache(
    config: CachedRepoConfig | None = None, name: str = "process"
) -> ReadThroughCache:
    """Create the process-wide cache.

    Args:
        config: Configuration, defaults to ``get_config()``
        name: Cache name for metrics and logs

    Returns:
        The new cache

    Raises:
        ConflictError: If the process cache already exists
    """
    global _cache
    with _lock:
        if _cache is not None:
            raise ConflictError(
                "Process cache is already initialized", conflicting_resource=_cache.name
            )
        cache = ReadThroughCache(config, name=name)
        _cache = cache

    logger.info("Process cache initialized", extra={"cache_name": name})
    return cache


def get_cache() -> ReadThroughCache:
    """Return the process-wide cache.

    Raises:
        CacheNotInitializedError: If ``initialize_cache`` has not been called
    """
    cache = _cache
    if cache is None:
        raise CacheNotInitializedError()
    return cache


def shutdown_cache() -> None:
    """Close and forget the process-wide cache; idempotent."""
    global _cache
    with _lock:
        cache, _cache = _cache, None

    if cache is not None:
        cache.close()
        logger.info("Process cache shut down", extra={"cache_name": cache.name})
