"""Abstract interface for cache entry storage.

This module defines the EntryStore interface that holds cached values with
their expiry and version. Implementations must be safe to call from several
threads at once and must never run caller code while holding their lock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cached_repo.domain.entities import CacheEntry


class EntryStore(ABC):
    """Abstract interface for cache entry storage and retrieval."""

    @abstractmethod
    def get(self, key: str) -> CacheEntry[Any] | None:
        """Return the entry for a key if present and not expired.

        Expired entries behave as absent and may be purged on access.

        Args:
            key: Canonical cache key

        Returns:
            The entry, or None
        """
        ...

    @abstractmethod
    def put(self, key: str, value: Any, ttl: timedelta) -> CacheEntry[Any]:
        """Insert or overwrite an entry.

        Args:
            key: Canonical cache key
            value: Materialized value to store
            ttl: Time to live, must be positive

        Returns:
            The new entry, carrying a version greater than any issued before

        Raises:
            ValidationError: If ttl is not positive
        """
        ...

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Remove an entry; idempotent.

        Args:
            key: Canonical cache key

        Returns:
            True if a live entry was removed, False if there was none
        """
        ...

    @abstractmethod
    def version(self, key: str) -> int | None:
        """Return the version of the live entry for a key, or None."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        ...

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Purge expired entries and return how many were removed."""
        ...

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of physically held entries, expired ones included."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        """Keys of the live (unexpired) entries."""
        ...
