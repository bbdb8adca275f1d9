"""Read-through cache facade for thread-based callers.

``ReadThroughCache`` is the single entry point applications use: it resolves
the key (a class or an explicit string), serves hits from the entry store and
coalesces misses through the single-flight loader.

Invalidating a key while its population is in flight does not cancel that
population; when it completes, its result is stored (last writer wins).
"""

from __future__ import annotations

from datetime import timedelta
from types import TracebackType
from typing import Any

from cached_repo.application.services.single_flight import Producer, SingleFlightLoader
from cached_repo.config import CachedRepoConfig, get_config
from cached_repo.domain.entities import CacheEntry
from cached_repo.domain.exceptions import CacheClosedError, ValidationError
from cached_repo.domain.interfaces import EntryStore
from cached_repo.domain.services import CacheKey, KeyResolver, ScopedKey, scope_prefix
from cached_repo.infrastructure.cache import InMemoryEntryStore
from cached_repo.infrastructure.logging import get_logger
from cached_repo.infrastructure.monitoring import CacheMetricsCollector

logger = get_logger(__name__)

KeyOrType = str | type | ScopedKey
TTL = timedelta | float | int


class BaseReadThroughCache:
    """Wiring shared by the thread and asyncio facades.

    Attributes:
        name: Cache name, used as the metrics label
    """

    def __init__(
        self,
        config: CachedRepoConfig | None = None,
        *,
        name: str = "default",
        store: EntryStore | None = None,
        key_resolver: KeyResolver | None = None,
        metrics: CacheMetricsCollector | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            config: Configuration, defaults to ``get_config()``
            name: Cache name for metrics and logs
            store: Entry store, defaults to an ``InMemoryEntryStore``
            key_resolver: Key resolver, defaults to a fresh ``KeyResolver``
            metrics: Metrics collector, defaults to one labelled ``name``
        """
        self._config = config or get_config()
        self.name = name
        self._metrics = metrics or CacheMetricsCollector(
            name, export=self._config.enable_metrics
        )
        self._store = store or InMemoryEntryStore(
            max_entries=self._config.cache.max_entries, metrics=self._metrics
        )
        self._keys = key_resolver or KeyResolver(
            max_key_length=self._config.keys.max_key_length
        )
        self._closed = False

    @property
    def config(self) -> CachedRepoConfig:
        """Configuration this cache was built with."""
        return self._config

    @property
    def store(self) -> EntryStore:
        """Underlying entry store."""
        return self._store

    @property
    def closed(self) -> bool:
        """Whether the cache has been closed."""
        return self._closed

    def key_for(self, entity_type: type) -> CacheKey:
        """Return the type key for a class."""
        return self._keys.key_for(entity_type)

    def register_type(self, entity_type: type, name: str) -> CacheKey:
        """Pin a class to a fixed key name before it is first cached."""
        return self._keys.register(entity_type, name)

    def resolve_key(self, key_or_type: KeyOrType) -> CacheKey:
        """Resolve a class or an explicit key string to a canonical key."""
        return self._keys.resolve(key_or_type)

    @property
    def stats(self) -> dict[str, Any]:
        """Cache statistics."""
        return {
            "name": self.name,
            "size": self._store.size,
            "closed": self._closed,
            **self._metrics.stats,
        }

    def _remove(self, key: CacheKey) -> bool:
        removed = self._store.remove(key)
        logger.debug("Cache invalidated", extra={"cache_key": key, "removed": removed})
        return removed

    def _remove_scope(self, scope: str) -> int:
        if not isinstance(scope, str) or not scope.strip():
            raise ValidationError("Scope cannot be empty", field="scope")
        prefix = scope_prefix(scope)
        removed = 0
        for key in self._store.keys():
            if key.startswith(prefix) and self._store.remove(key):
                removed += 1
        logger.debug("Cache scope invalidated", extra={"cache_scope": scope, "removed": removed})
        return removed

    def _ensure_open(self) -> None:
        if self._closed:
            raise CacheClosedError(self.name)

    def _resolve_ttl(self, ttl: TTL | None) -> timedelta:
        if ttl is None:
            return self._config.default_ttl
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        if ttl <= timedelta(0):
            raise ValidationError(f"TTL must be positive, got {ttl}", field="ttl")
        return ttl

    def _resolve_timeout(self, timeout: float | None) -> float | None:
        if timeout is None:
            return self._config.loader.default_wait_timeout_seconds
        if timeout <= 0:
            raise ValidationError(f"Timeout must be positive, got {timeout}", field="timeout")
        return timeout


class ReadThroughCache(BaseReadThroughCache):
    """Read-through, single-flight, type-keyed in-process cache.

    Example:
        cache = ReadThroughCache(name="users")
        users = cache.get_or_load(User, lambda: list(repo.get()))
        cache.invalidate_by_type(User)
    """

    def __init__(
        self,
        config: CachedRepoConfig | None = None,
        *,
        name: str = "default",
        store: EntryStore | None = None,
        key_resolver: KeyResolver | None = None,
        metrics: CacheMetricsCollector | None = None,
    ) -> None:
        super().__init__(
            config, name=name, store=store, key_resolver=key_resolver, metrics=metrics
        )
        self._loader = SingleFlightLoader(
            self._store,
            metrics=self._metrics,
            name=name,
        )
        logger.info(
            "Read-through cache created",
            extra={
                "cache_name": name,
                "default_ttl_seconds": self._config.cache.default_ttl_seconds,
                "max_entries": self._config.cache.max_entries,
            },
        )

    def get_or_load(
        self,
        key_or_type: KeyOrType,
        producer: Producer,
        ttl: TTL | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Return the cached value, populating it with ``producer`` on a miss.

        Args:
            key_or_type: Class (type key) or string (explicit key)
            producer: Zero-argument callable returning a materialized value
            ttl: Entry lifetime, defaults to the configured default TTL
            timeout: Seconds to wait for a population, defaults to the configured bound

        Returns:
            The cached value

        Raises:
            InvalidKeyError: If the key is invalid
            ProducerFailureError: If the producer failed
            LoadTimeoutError: If waiting exceeded the timeout
            CacheClosedError: If the cache is closed
        """
        return self.get_or_load_entry(key_or_type, producer, ttl, timeout).value

    def get_or_load_with_ttl(
        self,
        key_or_type: KeyOrType,
        producer: Producer,
        ttl: TTL,
        timeout: float | None = None,
    ) -> Any:
        """Same as ``get_or_load`` with a mandatory per-call TTL."""
        return self.get_or_load(key_or_type, producer, ttl=ttl, timeout=timeout)

    def get_or_load_entry(
        self,
        key_or_type: KeyOrType,
        producer: Producer,
        ttl: TTL | None = None,
        timeout: float | None = None,
    ) -> CacheEntry[Any]:
        """Like ``get_or_load`` but returns the entry, version included."""
        self._ensure_open()
        key = self._keys.resolve(key_or_type)
        return self._loader.load(
            key, producer, self._resolve_ttl(ttl), self._resolve_timeout(timeout)
        )

    def get_entry(self, key_or_type: KeyOrType) -> CacheEntry[Any] | None:
        """Return the live entry without populating it."""
        self._ensure_open()
        return self._store.get(self._keys.resolve(key_or_type))

    def is_stale(self, key_or_type: KeyOrType, version: int) -> bool:
        """Check whether a remembered version is no longer current."""
        self._ensure_open()
        return self._store.version(self._keys.resolve(key_or_type)) != version

    def invalidate(self, key_or_type: KeyOrType) -> bool:
        """Remove an entry; the next ``get_or_load`` runs its producer again.

        Returns:
            True if a live entry was removed
        """
        self._ensure_open()
        return self._remove(self._keys.resolve(key_or_type))

    def invalidate_by_type(self, entity_type: type) -> bool:
        """Remove the type-keyed entry of a class."""
        self._ensure_open()
        return self._remove(self._keys.key_for(entity_type))

    def invalidate_scope(self, scope: str) -> int:
        """Remove every live entry keyed by a ``ScopedKey`` under ``scope``.

        Returns:
            Number of live entries removed
        """
        self._ensure_open()
        return self._remove_scope(scope)

    def clear(self) -> int:
        """Remove every entry."""
        self._ensure_open()
        return self._store.clear()

    def cleanup_expired(self) -> int:
        """Purge expired entries."""
        self._ensure_open()
        return self._store.cleanup_expired()

    @property
    def in_flight_keys(self) -> list[str]:
        """Keys with a population currently running."""
        return self._loader.in_flight_keys

    def close(self) -> None:
        """Close the cache; idempotent.

        Populations already running still finish, but no new calls are
        accepted and all entries are dropped.
        """
        if self._closed:
            return
        self._closed = True
        self._loader.shutdown(wait=False)
        self._store.clear()
        logger.info("Read-through cache closed", extra={"cache_name": self.name})

    def __enter__(self) -> ReadThroughCache:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
