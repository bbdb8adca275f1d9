"""Unit tests for the in-memory entry store."""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest
from cached_repo.domain.enums import RemovalReason
from cached_repo.domain.exceptions import ValidationError
from cached_repo.infrastructure.cache import InMemoryEntryStore
from cached_repo.infrastructure.monitoring import CacheMetricsCollector


class TestInMemoryEntryStore:
    """Test InMemoryEntryStore functionality."""

    @pytest.fixture
    def store(self) -> InMemoryEntryStore:
        """Create a store without eviction."""
        return InMemoryEntryStore()

    def test_put_and_get(self, store: InMemoryEntryStore) -> None:
        """Test basic put and get."""
        stored = store.put("key:users", ("alice", "bob"), timedelta(minutes=1))

        entry = store.get("key:users")

        assert entry is stored
        assert entry.value == ("alice", "bob")
        assert store.size == 1
        assert store.keys() == ["key:users"]

    def test_get_missing_key(self, store: InMemoryEntryStore) -> None:
        """Test that a missing key returns None."""
        assert store.get("key:missing") is None
        assert store.version("key:missing") is None

    def test_expired_entry_is_absent(self, store: InMemoryEntryStore) -> None:
        """Test that an entry is gone once its TTL has elapsed."""
        store.put("key:short", "value", timedelta(milliseconds=1))

        time.sleep(0.01)

        assert store.get("key:short") is None
        assert store.size == 0

    def test_put_overwrites(self, store: InMemoryEntryStore) -> None:
        """Test that a second put replaces the value and bumps the version."""
        first = store.put("key:k", 1, timedelta(minutes=1))
        second = store.put("key:k", 2, timedelta(minutes=1))

        assert store.get("key:k").value == 2
        assert second.version > first.version
        assert store.size == 1

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-1)])
    def test_put_rejects_non_positive_ttl(self, store: InMemoryEntryStore, ttl: timedelta) -> None:
        """Test TTL validation."""
        with pytest.raises(ValidationError) as exc_info:
            store.put("key:k", 1, ttl)

        assert exc_info.value.details["field"] == "ttl"
        assert store.get("key:k") is None

    def test_remove_is_idempotent(self, store: InMemoryEntryStore) -> None:
        """Test that removing twice is safe."""
        store.put("key:k", 1, timedelta(minutes=1))

        assert store.remove("key:k") is True
        assert store.remove("key:k") is False
        assert store.get("key:k") is None

    def test_versions_increase_across_removals(self, store: InMemoryEntryStore) -> None:
        """Test that a removal makes earlier versions stale even for absent keys."""
        first = store.put("key:k", 1, timedelta(minutes=1))
        store.remove("key:other")
        second = store.put("key:k", 2, timedelta(minutes=1))

        assert second.version > first.version + 1
        assert store.version("key:k") == second.version

    def test_clear(self, store: InMemoryEntryStore) -> None:
        """Test that clear removes every entry."""
        store.put("key:a", 1, timedelta(minutes=1))
        store.put("key:b", 2, timedelta(minutes=1))

        assert store.clear() == 2
        assert store.size == 0
        assert store.get("key:a") is None

    def test_cleanup_expired(self, store: InMemoryEntryStore) -> None:
        """Test that the sweep removes only expired entries."""
        store.put("key:short", 1, timedelta(milliseconds=1))
        store.put("key:long", 2, timedelta(minutes=1))

        time.sleep(0.01)

        assert store.keys() == ["key:long"]
        assert store.cleanup_expired() == 1
        assert store.size == 1

    def test_invalid_max_entries(self) -> None:
        """Test that a non-positive capacity is rejected."""
        with pytest.raises(ValidationError):
            InMemoryEntryStore(max_entries=0)

    def test_concurrent_puts(self, store: InMemoryEntryStore) -> None:
        """Test that concurrent writers produce unique versions."""
        versions: list[int] = []
        lock = threading.Lock()

        def writer(worker: int) -> None:
            for i in range(50):
                entry = store.put(f"key:{worker}-{i}", i, timedelta(minutes=1))
                with lock:
                    versions.append(entry.version)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(versions) == 200
        assert len(set(versions)) == 200
        assert store.size == 200


class TestLruEviction:
    """Test bounded stores."""

    def test_oldest_entry_evicted(self) -> None:
        """Test that the least recently used entry leaves first."""
        store = InMemoryEntryStore(max_entries=2)
        store.put("key:a", 1, timedelta(minutes=1))
        store.put("key:b", 2, timedelta(minutes=1))

        store.get("key:a")
        store.put("key:c", 3, timedelta(minutes=1))

        assert store.get("key:b") is None
        assert store.get("key:a").value == 1
        assert store.get("key:c").value == 3
        assert store.max_entries == 2

    def test_overwrite_does_not_evict(self) -> None:
        """Test that replacing an existing key keeps the others."""
        store = InMemoryEntryStore(max_entries=2)
        store.put("key:a", 1, timedelta(minutes=1))
        store.put("key:b", 2, timedelta(minutes=1))

        store.put("key:b", 3, timedelta(minutes=1))

        assert store.size == 2
        assert store.get("key:a").value == 1


class TestStoreMetrics:
    """Test that removals are reported."""

    def test_removal_reasons_recorded(self) -> None:
        """Test each removal path reports its reason."""
        metrics = CacheMetricsCollector("store-metrics", export=False)
        store = InMemoryEntryStore(max_entries=1, metrics=metrics)

        store.put("key:a", 1, timedelta(minutes=1))
        store.put("key:a", 2, timedelta(minutes=1))
        store.put("key:b", 3, timedelta(minutes=1))
        store.remove("key:b")
        store.put("key:c", 4, timedelta(minutes=1))
        store.clear()

        removals = metrics.stats["removals"]
        assert removals[RemovalReason.REPLACED.value] == 1
        assert removals[RemovalReason.EVICTED.value] == 1
        assert removals[RemovalReason.INVALIDATED.value] == 1
        assert removals[RemovalReason.CLEARED.value] == 1
        assert removals[RemovalReason.EXPIRED.value] == 0
