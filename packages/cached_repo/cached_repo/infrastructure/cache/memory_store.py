"""In-memory entry store implementation."""

from __future__ import annotations

import itertools
import threading
from collections import OrderedDict
from datetime import UTC, datetime, timedelta
from typing import Any

from cached_repo.domain.entities import CacheEntry
from cached_repo.domain.enums import RemovalReason
from cached_repo.domain.exceptions import ValidationError
from cached_repo.domain.interfaces import EntryStore
from cached_repo.infrastructure.logging import get_logger
from cached_repo.infrastructure.monitoring import CacheMetricsCollector

logger = get_logger(__name__)


class InMemoryEntryStore(EntryStore):
    """Thread-safe in-process entry store with TTL expiry.

    This store provides:
    - TTL-based expiration, checked on every read and purged lazily
    - Store-wide version counter advanced by every put and every removal
    - Optional LRU eviction once ``max_entries`` is reached
    - A single short-held lock; no caller code runs under it

    Entries are immutable ``CacheEntry`` handles, so returning them does not
    expose the store's internal state.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        metrics: CacheMetricsCollector | None = None,
    ) -> None:
        """Initialize the entry store.

        Args:
            max_entries: Entry count that triggers LRU eviction, None for no limit
            metrics: Optional collector notified of removals and size changes
        """
        if max_entries is not None and max_entries < 1:
            raise ValidationError(
                f"max_entries must be positive, got {max_entries}", field="max_entries"
            )

        self._max_entries = max_entries
        self._metrics = metrics
        # Insertion/access order doubles as LRU order
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._versions = itertools.count(1)
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry[Any] | None:
        """Return the live entry for a key.

        Args:
            key: Canonical cache key

        Returns:
            The entry, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if entry.is_expired():
                self._remove_locked(key, RemovalReason.EXPIRED)
                logger.debug(
                    "Cache entry expired",
                    extra={
                        "cache_key": key,
                        "created_at": entry.created_at.isoformat(),
                        "expires_at": entry.expires_at.isoformat(),
                    },
                )
                return None

            if self._max_entries is not None:
                self._entries.move_to_end(key)
            return entry

    def put(self, key: str, value: Any, ttl: timedelta) -> CacheEntry[Any]:
        """Insert or overwrite the entry for a key.

        Args:
            key: Canonical cache key
            value: Materialized value
            ttl: Time to live

        Returns:
            The stored entry

        Raises:
            ValidationError: If ttl is not positive
        """
        if ttl <= timedelta(0):
            raise ValidationError(f"TTL must be positive, got {ttl}", field="ttl")

        with self._lock:
            if key in self._entries:
                self._remove_locked(key, RemovalReason.REPLACED)

            while self._max_entries is not None and len(self._entries) >= self._max_entries:
                oldest = next(iter(self._entries))
                self._remove_locked(oldest, RemovalReason.EVICTED)

            entry = CacheEntry.create(key, value, ttl, next(self._versions))
            self._entries[key] = entry
            size = len(self._entries)

        if self._metrics is not None:
            self._metrics.update_size(size)

        logger.debug(
            "Cache put",
            extra={
                "cache_key": key,
                "ttl_seconds": ttl.total_seconds(),
                "version": entry.version,
                "cache_size": size,
            },
        )
        return entry

    def remove(self, key: str) -> bool:
        """Remove the entry for a key; idempotent.

        The version counter advances even when nothing was stored, so any
        version remembered before this call is stale afterwards.

        Returns:
            True if a live entry was removed
        """
        with self._lock:
            next(self._versions)
            entry = self._entries.get(key)
            if entry is None:
                return False
            live = not entry.is_expired()
            self._remove_locked(key, RemovalReason.INVALIDATED if live else RemovalReason.EXPIRED)
            return live

    def version(self, key: str) -> int | None:
        """Return the version of the live entry for a key."""
        entry = self.get(key)
        return entry.version if entry is not None else None

    def clear(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = list(self._entries)
            for key in keys:
                self._remove_locked(key, RemovalReason.CLEARED)
            next(self._versions)

        logger.info("Cache cleared", extra={"entries_cleared": len(keys)})
        return len(keys)

    def cleanup_expired(self) -> int:
        """Purge all expired entries.

        Returns:
            Number of entries removed
        """
        now = datetime.now(UTC)
        with self._lock:
            expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                self._remove_locked(key, RemovalReason.EXPIRED)

        if expired_keys:
            logger.info("Cleaned up expired entries", extra={"count": len(expired_keys)})
        return len(expired_keys)

    @property
    def size(self) -> int:
        """Number of held entries, including not yet purged expired ones."""
        with self._lock:
            return len(self._entries)

    @property
    def max_entries(self) -> int | None:
        """Eviction threshold, None when eviction is disabled."""
        return self._max_entries

    def keys(self) -> list[str]:
        """Keys of the live entries."""
        now = datetime.now(UTC)
        with self._lock:
            return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def _remove_locked(self, key: str, reason: RemovalReason) -> None:
        """Drop an entry and report it.

        Note: This method assumes the caller already holds the lock.
        """
        if self._entries.pop(key, None) is None:
            return

        if self._metrics is not None:
            self._metrics.record_removal(key, reason)
            self._metrics.update_size(len(self._entries))

        logger.debug(
            "Cache entry removed",
            extra={"cache_key": key, "reason": reason.value, "cache_size": len(self._entries)},
        )
