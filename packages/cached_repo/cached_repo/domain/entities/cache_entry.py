"""Cache entry entity.

A ``CacheEntry`` is the immutable handle the entry store hands back to
callers. Callers that remember ``version`` next to a value can later compare
it with the store's current version to detect staleness.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with its expiry and version.

    Attributes:
        key: Canonical cache key
        value: Cached payload (already materialized)
        expires_at: UTC instant after which the entry counts as absent
        version: Store-wide monotonically increasing population counter
        created_at: UTC instant the entry was inserted
    """

    key: str
    value: T
    expires_at: datetime
    version: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate entry after initialization."""
        if not self.key:
            raise ValueError("Cache entry key cannot be empty")

        if self.version < 1:
            raise ValueError(f"Version must be positive, got {self.version}")

        if self.expires_at <= self.created_at:
            raise ValueError("Cache entry must expire after it was created")

    @classmethod
    def create(cls, key: str, value: T, ttl: timedelta, version: int) -> CacheEntry[T]:
        """Build an entry expiring ``ttl`` from now."""
        now = datetime.now(UTC)
        return cls(key=key, value=value, expires_at=now + ttl, version=version, created_at=now)

    def is_expired(self, current_time: datetime | None = None) -> bool:
        """Check whether the entry has passed its expiry.

        Args:
            current_time: Time to compare against, defaults to UTC now

        Returns:
            True if the entry must be treated as absent
        """
        if current_time is None:
            current_time = datetime.now(UTC)
        return current_time >= self.expires_at

    @property
    def ttl_remaining(self) -> timedelta:
        """Time left before expiry, never negative."""
        return max(self.expires_at - datetime.now(UTC), timedelta(0))
