"""Repository reads served through the read-through cache.

``CachedRepository`` opens a fresh unit of work for every database round
trip and materializes results before the unit of work closes, so the cache
only ever holds concrete tuples of entities. Reads are keyed so that the
whole-set entry, parameterized queries and single entities never share a
key. Filtered queries and single entities use scoped keys under the type
key, so every write drops them together with the whole-set entry without
tracking which keys were read.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from cached_repo.application.services.read_through_cache import TTL, ReadThroughCache
from cached_repo.domain.exceptions import InvalidKeyError
from cached_repo.domain.interfaces import OrderBy, Predicate, UnitOfWork
from cached_repo.domain.services import CacheKey, ScopedKey
from cached_repo.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

UnitOfWorkFactory = Callable[[], UnitOfWork[T]]


class CachedRepository(Generic[T]):
    """Cached read access to one entity set.

    Attributes:
        entity_type: Class of the entities in the set
    """

    def __init__(
        self,
        entity_type: type[T],
        unit_of_work_factory: UnitOfWorkFactory[T],
        cache: ReadThroughCache,
        ttl: TTL | None = None,
    ) -> None:
        """Initialize the cached repository.

        Args:
            entity_type: Class of the entities in the set
            unit_of_work_factory: Callable returning a new, open unit of work
            cache: Cache the reads are served through
            ttl: Entry lifetime, defaults to the cache's default TTL
        """
        self.entity_type = entity_type
        self._uow_factory = unit_of_work_factory
        self._cache = cache
        self._ttl = ttl
        self._type_key = cache.key_for(entity_type)

    @property
    def type_key(self) -> CacheKey:
        """Key of the cached whole-set entry."""
        return self._type_key

    def get_all(
        self,
        filter: Predicate[T] | None = None,
        order_by: OrderBy[T] | None = None,
        *,
        query_key: str | None = None,
        timeout: float | None = None,
    ) -> tuple[T, ...]:
        """Return entities of the set, from cache when possible.

        Without ``filter`` and ``order_by`` the result is cached under the
        type key. A filtered or ordered query must name itself with
        ``query_key``; it is cached under its own scoped key.

        Args:
            filter: Predicate passed through to the repository
            order_by: Ordering passed through to the repository
            query_key: Stable name for a parameterized query
            timeout: Seconds to wait for a population

        Returns:
            Materialized entities

        Raises:
            InvalidKeyError: If a parameterized query has no ``query_key``
        """
        if filter is None and order_by is None and query_key is None:
            return self._cache.get_or_load(
                self.entity_type,
                lambda: self._query(),
                ttl=self._ttl,
                timeout=timeout,
            )

        if query_key is None:
            raise InvalidKeyError(
                query_key, "filtered or ordered queries need an explicit query_key"
            )

        return self._cache.get_or_load(
            ScopedKey(self._type_key, query_key, kind="query"),
            lambda: self._query(filter, order_by),
            ttl=self._ttl,
            timeout=timeout,
        )

    def get_by_id(self, entity_id: Any, *, timeout: float | None = None) -> T | None:
        """Return one entity by primary key, from cache when possible.

        A missing entity is cached as None until the next write through this
        repository or until it expires.
        """
        return self._cache.get_or_load(
            ScopedKey(self._type_key, repr(entity_id), kind="id"),
            lambda: self._fetch_by_id(entity_id),
            ttl=self._ttl,
            timeout=timeout,
        )

    def insert(self, entity: T) -> None:
        """Insert one entity and invalidate cached reads."""
        with self._uow_factory() as uow:
            uow.repository.insert(entity)
            uow.commit()
        self.invalidate()

    def insert_many(self, entities: Sequence[T]) -> None:
        """Insert entities in configured batches and invalidate cached reads."""
        batch_size = self._cache.config.repository.insert_batch_size
        with self._uow_factory() as uow:
            uow.repository.insert_many(entities, batch_size=batch_size)
            uow.commit()
        logger.debug(
            "Inserted entities",
            extra={
                "entity_type": self.entity_type.__name__,
                "count": len(entities),
                "batch_size": batch_size,
            },
        )
        self.invalidate()

    def update(self, entity: T) -> None:
        """Update one entity and invalidate cached reads."""
        with self._uow_factory() as uow:
            uow.repository.update(entity)
            uow.commit()
        self.invalidate()

    def delete(self, entity: T) -> None:
        """Delete one entity and invalidate cached reads."""
        with self._uow_factory() as uow:
            uow.repository.delete(entity)
            uow.commit()
        self.invalidate()

    def delete_by_id(self, entity_id: Any) -> None:
        """Delete one entity by primary key and invalidate cached reads."""
        with self._uow_factory() as uow:
            uow.repository.delete_by_id(entity_id)
            uow.commit()
        self.invalidate()

    def invalidate(self) -> int:
        """Drop every cache entry this repository has populated.

        Returns:
            Number of live entries removed
        """
        removed = int(self._cache.invalidate_by_type(self.entity_type))
        removed += self._cache.invalidate_scope(self._type_key)

        logger.debug(
            "Invalidated cached reads",
            extra={"entity_type": self.entity_type.__name__, "removed": removed},
        )
        return removed

    def _query(
        self,
        filter: Predicate[T] | None = None,
        order_by: OrderBy[T] | None = None,
    ) -> tuple[T, ...]:
        with self._uow_factory() as uow:
            return tuple(uow.repository.get(filter=filter, order_by=order_by))

    def _fetch_by_id(self, entity_id: Any) -> T | None:
        with self._uow_factory() as uow:
            return uow.repository.get_by_id(entity_id)
