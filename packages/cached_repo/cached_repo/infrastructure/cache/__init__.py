"""Cache infrastructure for cached_repo."""

from __future__ import annotations

from .memory_store import InMemoryEntryStore

__all__ = [
    "InMemoryEntryStore",
]
