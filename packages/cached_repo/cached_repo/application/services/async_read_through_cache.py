"""Read-through cache facade for asyncio callers."""

from __future__ import annotations

import asyncio
import contextlib
from types import TracebackType
from typing import TYPE_CHECKING, Any

from cached_repo.application.services.async_single_flight import (
    AsyncProducer,
    AsyncSingleFlightLoader,
)
from cached_repo.application.services.read_through_cache import (
    TTL,
    BaseReadThroughCache,
    KeyOrType,
)
from cached_repo.config import CachedRepoConfig
from cached_repo.domain.entities import CacheEntry
from cached_repo.domain.interfaces import EntryStore
from cached_repo.domain.services import KeyResolver
from cached_repo.infrastructure.logging import get_logger
from cached_repo.infrastructure.monitoring import CacheMetricsCollector

if TYPE_CHECKING:
    from asyncio import Task

logger = get_logger(__name__)


class AsyncReadThroughCache(BaseReadThroughCache):
    """Read-through, single-flight, type-keyed cache for coroutines.

    This implementation provides:
    - One producer execution per key however many coroutines miss it
    - Blocking producers offloaded to threads, coroutine producers awaited
    - Per-call timeouts that never abort the shared computation
    - Optional background sweep of expired entries

    Use ``async with AsyncReadThroughCache(...) as cache`` to start the sweep
    and close the cache on exit. An instance is bound to one event loop.
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
        self._loader = AsyncSingleFlightLoader(self._store, metrics=self._metrics)
        self._cleanup_task: Task[None] | None = None
        self._running = False

        logger.info(
            "Async read-through cache created",
            extra={
                "cache_name": name,
                "default_ttl_seconds": self._config.cache.default_ttl_seconds,
                "cleanup_interval_seconds": self._config.cache.cleanup_interval_seconds,
            },
        )

    async def start(self) -> None:
        """Start the background expired entry sweep if enabled."""
        self._ensure_open()
        if self._running or not self._config.enable_auto_cleanup:
            return

        self._running = True
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("Started cache cleanup task", extra={"cache_name": self.name})

    async def stop(self) -> None:
        """Stop the background expired entry sweep."""
        self._running = False
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
            logger.info("Stopped cache cleanup task", extra={"cache_name": self.name})

    async def get_or_load(
        self,
        key_or_type: KeyOrType,
        producer: AsyncProducer,
        ttl: TTL | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Return the cached value, populating it with ``producer`` on a miss.

        Args:
            key_or_type: Class (type key) or string (explicit key)
            producer: Coroutine function or blocking callable returning a materialized value
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
        entry = await self.get_or_load_entry(key_or_type, producer, ttl, timeout)
        return entry.value

    async def get_or_load_with_ttl(
        self,
        key_or_type: KeyOrType,
        producer: AsyncProducer,
        ttl: TTL,
        timeout: float | None = None,
    ) -> Any:
        """Same as ``get_or_load`` with a mandatory per-call TTL."""
        return await self.get_or_load(key_or_type, producer, ttl=ttl, timeout=timeout)

    async def get_or_load_entry(
        self,
        key_or_type: KeyOrType,
        producer: AsyncProducer,
        ttl: TTL | None = None,
        timeout: float | None = None,
    ) -> CacheEntry[Any]:
        """Like ``get_or_load`` but returns the entry, version included."""
        self._ensure_open()
        key = self._keys.resolve(key_or_type)
        return await self._loader.load(
            key, producer, self._resolve_ttl(ttl), self._resolve_timeout(timeout)
        )

    async def get_entry(self, key_or_type: KeyOrType) -> CacheEntry[Any] | None:
        """Return the live entry without populating it."""
        self._ensure_open()
        return self._store.get(self._keys.resolve(key_or_type))

    async def is_stale(self, key_or_type: KeyOrType, version: int) -> bool:
        """Check whether a remembered version is no longer current."""
        self._ensure_open()
        return self._store.version(self._keys.resolve(key_or_type)) != version

    async def invalidate(self, key_or_type: KeyOrType) -> bool:
        """Remove an entry; the next ``get_or_load`` runs its producer again."""
        self._ensure_open()
        return self._remove(self._keys.resolve(key_or_type))

    async def invalidate_by_type(self, entity_type: type) -> bool:
        """Remove the type-keyed entry of a class."""
        self._ensure_open()
        return self._remove(self._keys.key_for(entity_type))

    async def invalidate_scope(self, scope: str) -> int:
        """Remove every live entry keyed by a ``ScopedKey`` under ``scope``."""
        self._ensure_open()
        return self._remove_scope(scope)

    async def clear(self) -> int:
        """Remove every entry."""
        self._ensure_open()
        return self._store.clear()

    async def cleanup_expired(self) -> int:
        """Purge expired entries."""
        self._ensure_open()
        return self._store.cleanup_expired()

    @property
    def in_flight_keys(self) -> list[str]:
        """Keys with a population currently running."""
        return self._loader.in_flight_keys

    async def close(self) -> None:
        """Stop the sweep, cancel running populations and drop all entries."""
        if self._closed:
            return
        self._closed = True
        await self.stop()
        await self._loader.shutdown()
        self._store.clear()
        logger.info("Async read-through cache closed", extra={"cache_name": self.name})

    async def __aenter__(self) -> AsyncReadThroughCache:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _cleanup_loop(self) -> None:
        """Background task that purges expired entries."""
        interval = self._config.cache.cleanup_interval_seconds
        while self._running:
            try:
                await asyncio.sleep(interval)
                removed = self._store.cleanup_expired()
                if removed:
                    logger.debug(
                        "Periodic cleanup removed entries",
                        extra={"cache_name": self.name, "removed": removed},
                    )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    "Error in cache cleanup loop",
                    exc_info=e,
                    extra={"cache_name": self.name, "error": str(e)},
                )
