"""Contracts for the data layer fronted by the cache.

The relational store itself is an external collaborator: this package never
implements queries or transactions. It only relies on the shapes below. A
repository wraps one entity set inside one database context; a unit of work
owns that context's lifetime and hands out the repository.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from types import TracebackType
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from cached_repo.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Predicate = Callable[[T], bool]
OrderBy = Callable[[Iterable[T]], Iterable[T]]


@runtime_checkable
class Repository(Protocol[T]):
    """Generic repository over a single entity set.

    Writes persist through ``save``, which commits a transaction and raises
    ``EntityValidationError`` when the store rejects an entity.
    """

    def get(
        self,
        filter: Predicate[T] | None = None,
        order_by: OrderBy[T] | None = None,
        include: Sequence[str] = (),
        take: int | None = None,
        skip: int | None = None,
    ) -> Iterable[T]:
        """Query entities, optionally filtered, ordered, eagerly joined and paged."""
        ...

    def get_by_id(self, entity_id: Any) -> T | None:
        """Return the entity with the given primary key, or None."""
        ...

    def get_by_predicate(self, predicate: Predicate[T]) -> T | None:
        """Return the first entity matching a predicate, or None."""
        ...

    def find_by(self, predicate: Predicate[T]) -> Iterable[T]:
        """Return every entity matching a predicate."""
        ...

    def exists(self, entity: T) -> bool:
        """Check whether an entity is part of the set."""
        ...

    def insert(self, entity: T) -> None:
        """Add one entity."""
        ...

    def insert_many(self, entities: Sequence[T], batch_size: int = 200) -> None:
        """Add entities, saving after every ``batch_size`` of them."""
        ...

    def update(self, entity: T) -> None:
        """Attach an entity and mark it modified."""
        ...

    def update_many(self, entities: Sequence[T]) -> None:
        """Persist pending modifications of several entities."""
        ...

    def delete(self, entity: T) -> None:
        """Remove one entity."""
        ...

    def delete_by_id(self, entity_id: Any) -> None:
        """Remove the entity with the given primary key."""
        ...

    def delete_where(self, predicate: Predicate[T]) -> None:
        """Remove every entity matching a predicate."""
        ...

    def save(self) -> None:
        """Commit pending changes in one transaction."""
        ...


class UnitOfWork(ABC, Generic[T]):
    """Owns one database context and the repository built on it.

    Use as a context manager: leaving the block with an exception rolls back,
    leaving it in any way closes the context. ``close`` is idempotent.
    """

    def __init__(self) -> None:
        """Initialize the unit of work."""
        self._closed = False

    @property
    @abstractmethod
    def repository(self) -> Repository[T]:
        """Repository bound to this unit of work's context."""
        ...

    @abstractmethod
    def commit(self) -> None:
        """Commit pending changes.

        Raises:
            EntityValidationError: If the store rejects an entity
        """
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Discard pending changes."""
        ...

    @abstractmethod
    def _dispose(self) -> None:
        """Release the underlying database context."""
        ...

    @property
    def closed(self) -> bool:
        """Whether the context has been released."""
        return self._closed

    def close(self) -> None:
        """Release the database context once."""
        if self._closed:
            return
        self._closed = True
        self._dispose()

    def __enter__(self) -> UnitOfWork[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                logger.debug(
                    "Rolling back unit of work",
                    extra={"error_type": exc_type.__name__},
                )
                self.rollback()
        finally:
            self.close()
