"""Domain services for cached_repo."""

from __future__ import annotations

from .key_resolver import (
    EXPLICIT_PREFIX,
    SCOPED_PREFIX,
    TYPE_PREFIX,
    CacheKey,
    KeyResolver,
    ScopedKey,
    scope_prefix,
)
from .materialization import is_materialized, materialize

__all__ = [
    "EXPLICIT_PREFIX",
    "SCOPED_PREFIX",
    "TYPE_PREFIX",
    "CacheKey",
    "KeyResolver",
    "ScopedKey",
    "is_materialized",
    "materialize",
    "scope_prefix",
]
