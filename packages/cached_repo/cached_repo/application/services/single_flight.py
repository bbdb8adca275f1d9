"""Single-flight population for thread-based callers.

At most one producer runs per key at any instant. The first caller to miss a
key registers an ``InFlightComputation`` and runs the producer; every other
caller that misses the same key while it runs waits on the shared future.
The registry lock only guards the in-flight map, so producers for different
keys never wait on each other.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from cached_repo.domain.entities import CacheEntry, InFlightComputation
from cached_repo.domain.enums import LoadOutcome
from cached_repo.domain.exceptions import (
    CacheClosedError,
    LoadTimeoutError,
    ProducerFailureError,
)
from cached_repo.domain.interfaces import EntryStore
from cached_repo.domain.services import materialize
from cached_repo.infrastructure.logging import get_logger
from cached_repo.infrastructure.monitoring import CacheMetricsCollector

logger = get_logger(__name__)

Producer = Callable[[], Any]


class SingleFlightLoader:
    """Read-through loader that coalesces concurrent misses per key.

    Without a timeout the registering caller runs the producer on its own
    thread. With a timeout the producer gets a dedicated daemon thread so the
    caller can stop waiting while the computation carries on and still
    publishes for everyone else. Populations never queue behind one another,
    so a slow key cannot make another key's caller time out.
    """

    def __init__(
        self,
        store: EntryStore,
        metrics: CacheMetricsCollector | None = None,
        name: str = "default",
    ) -> None:
        """Initialize the loader.

        Args:
            store: Entry store results are published to
            metrics: Optional metrics collector
            name: Owning cache name, reported once the loader is shut down
        """
        self._store = store
        self._metrics = metrics
        self._name = name
        self._inflight: dict[str, InFlightComputation] = {}
        self._workers: set[threading.Thread] = set()
        self._closed = False
        self._lock = threading.Lock()

    def load(
        self,
        key: str,
        producer: Producer,
        ttl: timedelta,
        timeout: float | None = None,
    ) -> CacheEntry[Any]:
        """Return the entry for a key, running ``producer`` at most once on a miss.

        Args:
            key: Canonical cache key
            producer: Zero-argument callable returning a materialized value
            ttl: Time to live for a freshly produced value
            timeout: Seconds to wait for the population, None to wait indefinitely

        Returns:
            The cached or freshly published entry

        Raises:
            ProducerFailureError: If the computation this caller joined failed
            UnmaterializedResultError: If the producer returned a lazy value
            LoadTimeoutError: If the wait exceeded ``timeout``
            CacheClosedError: If a new population would start after shutdown
        """
        entry = self._store.get(key)
        if entry is not None:
            self._record_hit(key)
            return entry

        worker: threading.Thread | None = None
        with self._lock:
            # A computation may have published between the lookup above and
            # taking the lock
            entry = self._store.get(key)
            if entry is None:
                flight = self._inflight.get(key)
                leader = flight is None or flight.done
                if leader:
                    if self._closed:
                        raise CacheClosedError(self._name)
                    flight = InFlightComputation(key=key, future=concurrent.futures.Future())
                    self._inflight[key] = flight
                    if timeout is not None:
                        worker = threading.Thread(
                            target=self._execute,
                            args=(flight, producer, ttl),
                            name=f"cached-repo-load:{key}",
                            daemon=True,
                        )
                        self._workers.add(worker)
                else:
                    flight.join()

        if entry is not None:
            self._record_hit(key)
            return entry

        if leader:
            if self._metrics is not None:
                self._metrics.record_miss(key)
            if worker is None:
                self._execute(flight, producer, ttl)
            else:
                worker.start()
        elif self._metrics is not None:
            self._metrics.record_coalesced(key)

        return self._wait(flight, timeout)

    @property
    def in_flight_keys(self) -> list[str]:
        """Keys with a population currently running."""
        with self._lock:
            return list(self._inflight)

    def shutdown(self, wait: bool = False) -> None:
        """Refuse new populations.

        Running producers finish and publish. With ``wait`` the call blocks
        until the worker threads of timed populations have exited.
        """
        with self._lock:
            self._closed = True
            workers = list(self._workers)
        if wait:
            for worker in workers:
                if worker.is_alive():
                    worker.join()

    def _execute(self, flight: InFlightComputation, producer: Producer, ttl: timedelta) -> None:
        """Run the producer once and deliver its outcome to every waiter."""
        future: concurrent.futures.Future[Any] = flight.future  # type: ignore[assignment]
        started = time.perf_counter()
        try:
            try:
                result = producer()
            except Exception as e:
                self._record_load(flight.key, LoadOutcome.FAILURE, started)
                logger.warning(
                    "Cache population failed",
                    exc_info=e,
                    extra={"cache_key": flight.key, "waiters": flight.waiters},
                )
                future.set_exception(ProducerFailureError(flight.key, e))
                return

            try:
                entry = self._store.put(flight.key, materialize(flight.key, result), ttl)
            except Exception as e:
                # Contract violations (lazy result, bad TTL) reach callers unwrapped
                self._record_load(flight.key, LoadOutcome.FAILURE, started)
                future.set_exception(e)
                return

            self._record_load(flight.key, LoadOutcome.SUCCESS, started)
            future.set_result(entry)
        finally:
            with self._lock:
                if self._inflight.get(flight.key) is flight:
                    del self._inflight[flight.key]
                self._workers.discard(threading.current_thread())
            if not future.done():
                # Interrupted by a BaseException; release the waiters
                future.cancel()

    def _wait(self, flight: InFlightComputation, timeout: float | None) -> CacheEntry[Any]:
        future: concurrent.futures.Future[Any] = flight.future  # type: ignore[assignment]
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            if self._metrics is not None:
                self._metrics.record_timeout(flight.key, timeout or 0.0)
            raise LoadTimeoutError(flight.key, timeout or 0.0) from None

    def _record_hit(self, key: str) -> None:
        if self._metrics is not None:
            self._metrics.record_hit(key)

    def _record_load(self, key: str, outcome: LoadOutcome, started: float) -> None:
        if self._metrics is not None:
            self._metrics.record_load(key, outcome, time.perf_counter() - started)
