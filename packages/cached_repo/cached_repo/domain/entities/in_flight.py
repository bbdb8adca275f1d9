"""In-flight computation entity."""

from __future__ import annotations

import asyncio
import concurrent.futures
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(eq=False)
class InFlightComputation:
    """A population of one key that is currently running.

    Exactly one of these exists per key while its producer runs. Every caller
    that misses the same key waits on ``future`` instead of starting another
    computation. The record is dropped once the result has been published to
    the entry store or the failure has been delivered.

    Attributes:
        key: Cache key being populated
        future: Completion signal shared by the leader and all joiners
        started_at: UTC instant the computation was registered
        waiters: Number of callers that joined after the leader
    """

    key: str
    future: concurrent.futures.Future[Any] | asyncio.Future[Any]
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    waiters: int = 0

    def join(self) -> None:
        """Record that another caller is waiting on this computation."""
        self.waiters += 1

    @property
    def done(self) -> bool:
        """Whether the result or failure has been delivered."""
        return self.future.done()
