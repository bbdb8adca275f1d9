"""Unit tests for the thread-based read-through cache facade."""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest
from cached_repo.application.services import ReadThroughCache
from cached_repo.config import CachedRepoConfig
from cached_repo.domain.exceptions import (
    CacheClosedError,
    InvalidKeyError,
    LoadTimeoutError,
    ProducerFailureError,
    ValidationError,
)
from cached_repo.domain.services import ScopedKey


class User:
    pass


class Order:
    pass


class Counter:
    """Zero-argument producer returning an incrementing list."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> list[int]:
        self.calls += 1
        return [self.calls]


class TestGetOrLoad:
    """Test read-through population."""

    def test_hit_after_miss(self, cache: ReadThroughCache) -> None:
        """Test that the second call is served from cache."""
        producer = Counter()

        assert cache.get_or_load(User, producer) == (1,)
        assert cache.get_or_load(User, producer) == (1,)
        assert producer.calls == 1
        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1

    def test_type_and_explicit_keys_are_distinct(self, cache: ReadThroughCache) -> None:
        """Test that a class and a string with the same name never share data."""
        cache.register_type(User, "users")

        by_type = cache.get_or_load(User, lambda: "type")
        by_key = cache.get_or_load("users", lambda: "explicit")

        assert by_type == "type"
        assert by_key == "explicit"
        assert cache.resolve_key(User) != cache.resolve_key("users")

    def test_distinct_types_are_distinct(self, cache: ReadThroughCache) -> None:
        """Test that two classes have separate entries."""
        cache.get_or_load(User, lambda: "users")

        assert cache.get_or_load(Order, lambda: "orders") == "orders"

    def test_invalid_key(self, cache: ReadThroughCache) -> None:
        """Test that an empty key is rejected before any producer runs."""
        producer = Counter()

        with pytest.raises(InvalidKeyError):
            cache.get_or_load("", producer)

        assert producer.calls == 0

    def test_default_ttl_applied(self, cache: ReadThroughCache) -> None:
        """Test that the configured TTL is used when none is given."""
        entry = cache.get_or_load_entry(User, Counter())

        assert entry.expires_at - entry.created_at == timedelta(seconds=300)

    def test_per_call_ttl(self, cache: ReadThroughCache) -> None:
        """Test that a short TTL expires the entry."""
        producer = Counter()

        cache.get_or_load_with_ttl("short", producer, ttl=timedelta(milliseconds=1))
        time.sleep(0.01)

        assert cache.get_or_load_with_ttl("short", producer, ttl=0.5) == (2,)
        assert producer.calls == 2

    @pytest.mark.parametrize("ttl", [0, -1, timedelta(0)])
    def test_non_positive_ttl_rejected(self, cache: ReadThroughCache, ttl: object) -> None:
        """Test TTL validation happens before population."""
        producer = Counter()

        with pytest.raises(ValidationError):
            cache.get_or_load(User, producer, ttl=ttl)

        assert producer.calls == 0

    def test_non_positive_timeout_rejected(self, cache: ReadThroughCache) -> None:
        """Test timeout validation."""
        with pytest.raises(ValidationError):
            cache.get_or_load(User, Counter(), timeout=0)

    def test_producer_failure_not_cached(self, cache: ReadThroughCache) -> None:
        """Test that a failed population is retried on the next call."""

        def failing() -> object:
            raise ConnectionError("db down")

        with pytest.raises(ProducerFailureError) as exc_info:
            cache.get_or_load(User, failing)

        assert isinstance(exc_info.value.cause, ConnectionError)
        assert cache.get_entry(User) is None
        assert cache.get_or_load(User, Counter()) == (1,)

    def test_configured_wait_timeout(self, cache_name: str) -> None:
        """Test that the configured wait bound applies when no timeout is passed."""
        config = CachedRepoConfig(
            loader={"default_wait_timeout_seconds": 0.05}, enable_auto_cleanup=False
        )
        release = threading.Event()

        def slow() -> str:
            release.wait(timeout=5)
            return "slow"

        with ReadThroughCache(config, name=cache_name) as cache:
            with pytest.raises(LoadTimeoutError):
                cache.get_or_load("report", slow)
            release.set()
            assert cache.get_or_load("report", slow, timeout=5) == "slow"

    def test_concurrent_callers_share_one_population(self, cache: ReadThroughCache) -> None:
        """Test single-flight through the facade."""
        calls = 0
        lock = threading.Lock()
        barrier = threading.Barrier(20)
        results: list[object] = []

        def produce() -> list[str]:
            nonlocal calls
            with lock:
                calls += 1
            time.sleep(0.1)
            return ["a"]

        def call() -> None:
            barrier.wait()
            value = cache.get_or_load(User, produce)
            with lock:
                results.append(value)

        threads = [threading.Thread(target=call) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert calls == 1
        assert results == [("a",)] * 20

    def test_slow_keys_do_not_time_out_fast_key(self, cache: ReadThroughCache) -> None:
        """Test that blocked timed loads leave room for an unrelated key."""
        release = threading.Event()
        started = threading.Semaphore(0)

        def slow() -> str:
            started.release()
            release.wait(timeout=10)
            return "slow"

        threads = [
            threading.Thread(
                target=cache.get_or_load, args=(f"slow-{i}", slow), kwargs={"timeout": 10}
            )
            for i in range(4)
        ]
        for thread in threads:
            thread.start()
        try:
            for _ in threads:
                assert started.acquire(timeout=5)

            assert cache.get_or_load("fast", lambda: "fast", timeout=0.5) == "fast"
        finally:
            release.set()
            for thread in threads:
                thread.join(timeout=5)


class TestInvalidation:
    """Test explicit invalidation."""

    def test_invalidate_scope(self, cache: ReadThroughCache) -> None:
        """Test that scope invalidation drops exactly the keys under that scope."""
        cache.get_or_load(ScopedKey("orders", "1", kind="id"), lambda: "one")
        cache.get_or_load(ScopedKey("orders", "open", kind="query"), lambda: ["one"])
        cache.get_or_load(ScopedKey("orders/archive", "1", kind="id"), lambda: "archived")
        cache.get_or_load("orders", lambda: "explicit")

        assert cache.invalidate_scope("orders") == 2
        assert cache.invalidate_scope("orders") == 0
        assert cache.get_entry(ScopedKey("orders", "1", kind="id")) is None
        assert cache.get_entry(ScopedKey("orders/archive", "1", kind="id")) is not None
        assert cache.get_entry("orders") is not None

    def test_invalidate_blank_scope_rejected(self, cache: ReadThroughCache) -> None:
        """Test that an empty scope is refused."""
        with pytest.raises(ValidationError):
            cache.invalidate_scope("")

    def test_invalidate_reruns_producer(self, cache: ReadThroughCache) -> None:
        """Test that invalidation forces the next call to populate again."""
        producer = Counter()
        cache.get_or_load(User, producer)

        assert cache.invalidate(User) is True
        assert cache.get_or_load(User, producer) == (2,)

    def test_invalidate_by_type(self, cache: ReadThroughCache) -> None:
        """Test type invalidation leaves explicit keys alone."""
        cache.get_or_load(User, lambda: "typed")
        cache.get_or_load("other", lambda: "explicit")

        assert cache.invalidate_by_type(User) is True
        assert cache.get_entry(User) is None
        assert cache.get_entry("other").value == "explicit"

    def test_invalidate_missing_key(self, cache: ReadThroughCache) -> None:
        """Test that invalidating an absent key is a no-op."""
        assert cache.invalidate("missing") is False
        assert cache.invalidate_by_type(Order) is False

    def test_is_stale_after_invalidation(self, cache: ReadThroughCache) -> None:
        """Test that a remembered version goes stale on invalidation."""
        entry = cache.get_or_load_entry(User, Counter())
        assert not cache.is_stale(User, entry.version)

        cache.invalidate(User)
        assert cache.is_stale(User, entry.version)

        reloaded = cache.get_or_load_entry(User, Counter())
        assert reloaded.version > entry.version
        assert cache.is_stale(User, entry.version)

    def test_invalidate_during_population_keeps_result(self, cache: ReadThroughCache) -> None:
        """Test that the in-flight result is still stored after invalidation."""
        release = threading.Event()
        started = threading.Event()

        def slow() -> str:
            started.set()
            release.wait(timeout=5)
            return "loaded"

        thread = threading.Thread(target=cache.get_or_load, args=("k", slow))
        thread.start()
        assert started.wait(timeout=5)

        assert cache.invalidate("k") is False
        release.set()
        thread.join(timeout=5)

        assert cache.get_entry("k").value == "loaded"

    def test_clear_and_cleanup(self, cache: ReadThroughCache) -> None:
        """Test clearing and sweeping."""
        cache.get_or_load("a", lambda: 1)
        cache.get_or_load("b", lambda: 2, ttl=timedelta(milliseconds=1))
        time.sleep(0.01)

        assert cache.cleanup_expired() == 1
        assert cache.clear() == 1
        assert cache.stats["size"] == 0


class TestClose:
    """Test cache shutdown."""

    def test_closed_cache_rejects_calls(self, config: CachedRepoConfig, cache_name: str) -> None:
        """Test that every operation fails after close."""
        cache = ReadThroughCache(config, name=cache_name)
        cache.get_or_load(User, lambda: 1)

        cache.close()
        cache.close()

        assert cache.closed
        assert cache.store.size == 0
        with pytest.raises(CacheClosedError):
            cache.get_or_load(User, lambda: 1)
        with pytest.raises(CacheClosedError):
            cache.invalidate(User)
        with pytest.raises(CacheClosedError):
            cache.get_entry(User)

    def test_context_manager_closes(self, config: CachedRepoConfig, cache_name: str) -> None:
        """Test that leaving the block closes the cache."""
        with ReadThroughCache(config, name=cache_name) as cache:
            assert not cache.closed

        assert cache.closed
        assert cache.stats["closed"] is True


class TestMaxEntries:
    """Test bounded caches."""

    def test_lru_eviction(self, cache_name: str) -> None:
        """Test that the configured capacity is enforced."""
        config = CachedRepoConfig(cache={"max_entries": 2}, enable_auto_cleanup=False)

        with ReadThroughCache(config, name=cache_name) as cache:
            cache.get_or_load("a", lambda: 1)
            cache.get_or_load("b", lambda: 2)
            cache.get_or_load("c", lambda: 3)

            assert cache.get_entry("a") is None
            assert cache.stats["size"] == 2
            assert cache.stats["removals"]["evicted"] == 1
