"""Metrics collection for the read-through cache."""

from __future__ import annotations

import threading
from typing import Any

from prometheus_client import Counter, Gauge, Histogram

from cached_repo.domain.enums import LoadOutcome, RemovalReason
from cached_repo.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Lookup metrics
cache_hits_total = Counter(
    "cached_repo_cache_hits_total",
    "Total number of lookups served from the entry store",
    ["cache_name"],
)

cache_misses_total = Counter(
    "cached_repo_cache_misses_total",
    "Total number of lookups that started a population",
    ["cache_name"],
)

cache_coalesced_total = Counter(
    "cached_repo_cache_coalesced_total",
    "Total number of lookups that joined an in-flight population",
    ["cache_name"],
)

# Population metrics
cache_loads_total = Counter(
    "cached_repo_cache_loads_total",
    "Total number of producer executions",
    ["cache_name", "outcome"],
)

cache_load_duration = Histogram(
    "cached_repo_cache_load_duration_seconds",
    "Producer execution duration in seconds",
    ["cache_name"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

cache_wait_timeouts_total = Counter(
    "cached_repo_cache_wait_timeouts_total",
    "Total number of callers that stopped waiting for a population",
    ["cache_name"],
)

# Store metrics
cache_removals_total = Counter(
    "cached_repo_cache_removals_total",
    "Total number of entries removed from the store",
    ["cache_name", "reason"],
)

cache_entries = Gauge(
    "cached_repo_cache_entries",
    "Current number of entries held by the store",
    ["cache_name"],
)


class CacheMetricsCollector:
    """Collects cache metrics for one named cache.

    Prometheus series are labelled by ``cache_name``. The collector also keeps
    its own counters so ``stats`` works without a Prometheus scrape.
    """

    def __init__(self, cache_name: str, export: bool = True) -> None:
        """Initialize metrics collector.

        Args:
            cache_name: Label value identifying the cache
            export: Whether to update the Prometheus series
        """
        self.cache_name = cache_name
        self.export = export
        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._loads = 0
        self._load_failures = 0
        self._timeouts = 0
        self._removals: dict[str, int] = {reason.value: 0 for reason in RemovalReason}
        # Guards the local counters; updates come from any caller thread
        self._lock = threading.Lock()

    def record_hit(self, key: str) -> None:
        """Record a lookup served from the store."""
        with self._lock:
            self._hits += 1
        if self.export:
            cache_hits_total.labels(cache_name=self.cache_name).inc()

        logger.debug(
            "Cache hit",
            extra={"cache_name": self.cache_name, "cache_key": key, "metric": "cache_hits_total"},
        )

    def record_miss(self, key: str) -> None:
        """Record a lookup that registered a new population."""
        with self._lock:
            self._misses += 1
        if self.export:
            cache_misses_total.labels(cache_name=self.cache_name).inc()

        logger.debug(
            "Cache miss",
            extra={
                "cache_name": self.cache_name,
                "cache_key": key,
                "metric": "cache_misses_total",
            },
        )

    def record_coalesced(self, key: str) -> None:
        """Record a lookup that joined an in-flight population."""
        with self._lock:
            self._coalesced += 1
        if self.export:
            cache_coalesced_total.labels(cache_name=self.cache_name).inc()

        logger.debug(
            "Joined in-flight population",
            extra={
                "cache_name": self.cache_name,
                "cache_key": key,
                "metric": "cache_coalesced_total",
            },
        )

    def record_load(self, key: str, outcome: LoadOutcome, duration_seconds: float) -> None:
        """Record one producer execution.

        Args:
            key: Cache key that was populated
            outcome: Whether the producer succeeded
            duration_seconds: Producer run time
        """
        with self._lock:
            self._loads += 1
            if outcome is LoadOutcome.FAILURE:
                self._load_failures += 1
        if self.export:
            cache_loads_total.labels(cache_name=self.cache_name, outcome=outcome.value).inc()
            cache_load_duration.labels(cache_name=self.cache_name).observe(duration_seconds)

    def record_timeout(self, key: str, timeout_seconds: float) -> None:
        """Record a caller that gave up waiting."""
        with self._lock:
            self._timeouts += 1
        if self.export:
            cache_wait_timeouts_total.labels(cache_name=self.cache_name).inc()

        logger.warning(
            "Cache wait timed out",
            extra={
                "cache_name": self.cache_name,
                "cache_key": key,
                "timeout_seconds": timeout_seconds,
                "metric": "cache_wait_timeouts_total",
            },
        )

    def record_removal(self, key: str, reason: RemovalReason) -> None:
        """Record an entry leaving the store."""
        with self._lock:
            self._removals[reason.value] += 1
        if self.export:
            cache_removals_total.labels(cache_name=self.cache_name, reason=reason.value).inc()

    def update_size(self, size: int) -> None:
        """Publish the current entry count."""
        if self.export:
            cache_entries.labels(cache_name=self.cache_name).set(size)

    @property
    def hit_rate(self) -> float:
        """Share of lookups served without running a producer."""
        with self._lock:
            served = self._hits + self._coalesced
            total = served + self._misses
        return served / total if total > 0 else 0.0

    @property
    def stats(self) -> dict[str, Any]:
        """Snapshot of the local counters."""
        hit_rate = self.hit_rate
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "coalesced": self._coalesced,
                "loads": self._loads,
                "load_failures": self._load_failures,
                "timeouts": self._timeouts,
                "removals": dict(self._removals),
                "hit_rate": hit_rate,
            }
