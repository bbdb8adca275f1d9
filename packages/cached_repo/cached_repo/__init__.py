"""cached_repo: read-through, single-flight caching for repository reads.

Public API::

    from cached_repo import ReadThroughCache

    with ReadThroughCache(name="catalog") as cache:
        products = cache.get_or_load(Product, lambda: list(repo.get()))
        cache.invalidate_by_type(Product)
"""

from cached_repo.application.lifecycle import get_cache, initialize_cache, shutdown_cache
from cached_repo.application.services import (
    AsyncReadThroughCache,
    CachedRepository,
    ReadThroughCache,
)
from cached_repo.config import CachedRepoConfig, get_config, reload_config
from cached_repo.domain.entities import CacheEntry
from cached_repo.domain.exceptions import (
    CacheClosedError,
    CachedRepoError,
    CacheNotInitializedError,
    InvalidKeyError,
    KeyCollisionError,
    LoadTimeoutError,
    ProducerFailureError,
    UnmaterializedResultError,
)
from cached_repo.domain.interfaces import Repository, UnitOfWork
from cached_repo.domain.services import CacheKey, KeyResolver, ScopedKey
from cached_repo.version import __version__

__all__ = [
    "AsyncReadThroughCache",
    "CacheClosedError",
    "CacheEntry",
    "CacheKey",
    "CacheNotInitializedError",
    "CachedRepoConfig",
    "CachedRepoError",
    "CachedRepository",
    "InvalidKeyError",
    "KeyCollisionError",
    "KeyResolver",
    "LoadTimeoutError",
    "ProducerFailureError",
    "ReadThroughCache",
    "Repository",
    "ScopedKey",
    "UnitOfWork",
    "UnmaterializedResultError",
    "__version__",
    "get_cache",
    "get_config",
    "initialize_cache",
    "reload_config",
    "shutdown_cache",
]
