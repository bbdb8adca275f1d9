"""Materialization checks for values entering the cache.

Producers must hand the cache concrete data. A value that can be iterated
but is not a collection (a generator, a database cursor, an ORM query) is
still bound to whatever produced it and is rejected. Mutable containers are
frozen so a caller cannot change what other callers will read.
"""

from __future__ import annotations

import inspect
from collections.abc import Collection, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from cached_repo.domain.exceptions import UnmaterializedResultError


def is_materialized(value: Any) -> bool:
    """Check whether a value is safe to cache as-is (before freezing)."""
    if inspect.isawaitable(value):
        return False
    if isinstance(value, Iterable) and not isinstance(value, Collection):
        return False
    return True


def materialize(key: str, value: Any) -> Any:
    """Validate and freeze a producer result.

    Args:
        key: Cache key being populated, used for error reporting
        value: Producer result

    Returns:
        The value to store: lists become tuples, sets become frozensets,
        dicts become read-only mapping proxies over a copy; anything else is
        returned unchanged

    Raises:
        UnmaterializedResultError: If the value is lazy
    """
    if not is_materialized(value):
        if inspect.iscoroutine(value):
            value.close()
        raise UnmaterializedResultError(key, type(value).__name__)

    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, set):
        return frozenset(value)
    if isinstance(value, Mapping) and not isinstance(value, MappingProxyType):
        return MappingProxyType(dict(value))
    return value
