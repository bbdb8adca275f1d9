"""Single-flight population for asyncio callers.

Each population runs as its own task. Callers wait on the computation's
future through ``asyncio.shield``, so a caller that times out or is cancelled
never cancels the work other callers are waiting for. Plain (blocking)
producers run on a dedicated daemon thread so a slow database query for one
key never stalls the event loop or queues behind the others.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import threading
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from cached_repo.domain.entities import CacheEntry, InFlightComputation
from cached_repo.domain.enums import LoadOutcome
from cached_repo.domain.exceptions import LoadTimeoutError, ProducerFailureError
from cached_repo.domain.interfaces import EntryStore
from cached_repo.domain.services import materialize
from cached_repo.infrastructure.logging import get_logger
from cached_repo.infrastructure.monitoring import CacheMetricsCollector

logger = get_logger(__name__)

AsyncProducer = Callable[[], Awaitable[Any]] | Callable[[], Any]


def _run_in_thread(key: str, producer: Callable[[], Any]) -> concurrent.futures.Future[Any]:
    # One daemon thread per population; a shared executor would queue a key
    # behind unrelated slow producers.
    future: concurrent.futures.Future[Any] = concurrent.futures.Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(producer())
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=run, name=f"cached-repo-load:{key}", daemon=True).start()
    return future


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Every waiter may have timed out; retrieve the exception so asyncio does
    # not report it as never retrieved.
    if not future.cancelled():
        future.exception()


class AsyncSingleFlightLoader:
    """Read-through loader that coalesces concurrent misses per key.

    The in-flight map is only touched from the event loop thread and never
    across an ``await``, so registration is atomic without a lock. A loader
    belongs to the event loop it is first used from.
    """

    def __init__(
        self,
        store: EntryStore,
        metrics: CacheMetricsCollector | None = None,
    ) -> None:
        """Initialize the loader.

        Args:
            store: Entry store results are published to
            metrics: Optional metrics collector
        """
        self._store = store
        self._metrics = metrics
        self._inflight: dict[str, InFlightComputation] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    async def load(
        self,
        key: str,
        producer: AsyncProducer,
        ttl: timedelta,
        timeout: float | None = None,
    ) -> CacheEntry[Any]:
        """Return the entry for a key, running ``producer`` at most once on a miss.

        Args:
            key: Canonical cache key
            producer: Coroutine function or plain callable returning a materialized value
            ttl: Time to live for a freshly produced value
            timeout: Seconds to wait for the population, None to wait indefinitely

        Returns:
            The cached or freshly published entry

        Raises:
            ProducerFailureError: If the computation this caller joined failed
            UnmaterializedResultError: If the producer returned a lazy value
            LoadTimeoutError: If the wait exceeded ``timeout``
        """
        entry = self._store.get(key)
        if entry is not None:
            if self._metrics is not None:
                self._metrics.record_hit(key)
            return entry

        flight = self._inflight.get(key)
        if flight is None or flight.done:
            flight = self._start(key, producer, ttl)
            if self._metrics is not None:
                self._metrics.record_miss(key)
        else:
            flight.join()
            if self._metrics is not None:
                self._metrics.record_coalesced(key)

        return await self._wait(flight, timeout)

    @property
    def in_flight_keys(self) -> list[str]:
        """Keys with a population currently running."""
        return list(self._inflight)

    async def shutdown(self) -> None:
        """Cancel running populations and wait for them to unwind.

        Callers still waiting on a cancelled population receive
        ``asyncio.CancelledError``.
        """
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Async loader shut down", extra={"cancelled_loads": len(tasks)})

    def _start(self, key: str, producer: AsyncProducer, ttl: timedelta) -> InFlightComputation:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        future.add_done_callback(_consume_exception)
        flight = InFlightComputation(key=key, future=future)
        self._inflight[key] = flight

        task = loop.create_task(self._execute(flight, producer, ttl), name=f"cache-load:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return flight

    async def _execute(
        self, flight: InFlightComputation, producer: AsyncProducer, ttl: timedelta
    ) -> None:
        """Run the producer once and deliver its outcome to every waiter."""
        future: asyncio.Future[Any] = flight.future  # type: ignore[assignment]
        started = time.perf_counter()
        try:
            try:
                result = await self._call(flight.key, producer)
            except asyncio.CancelledError:
                raise
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
                self._record_load(flight.key, LoadOutcome.FAILURE, started)
                future.set_exception(e)
                return

            self._record_load(flight.key, LoadOutcome.SUCCESS, started)
            future.set_result(entry)
        finally:
            if self._inflight.get(flight.key) is flight:
                del self._inflight[flight.key]
            if not future.done():
                future.cancel()

    @staticmethod
    async def _call(key: str, producer: AsyncProducer) -> Any:
        if inspect.iscoroutinefunction(producer):
            return await producer()

        result = await asyncio.wrap_future(_run_in_thread(key, producer))
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _wait(self, flight: InFlightComputation, timeout: float | None) -> CacheEntry[Any]:
        future: asyncio.Future[Any] = flight.future  # type: ignore[assignment]
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            if self._metrics is not None:
                self._metrics.record_timeout(flight.key, timeout or 0.0)
            raise LoadTimeoutError(flight.key, timeout or 0.0) from None

    def _record_load(self, key: str, outcome: LoadOutcome, started: float) -> None:
        if self._metrics is not None:
            self._metrics.record_load(key, outcome, time.perf_counter() - started)
