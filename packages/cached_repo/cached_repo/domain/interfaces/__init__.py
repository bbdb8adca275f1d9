"""Domain interfaces for cached_repo.

This module contains abstract interfaces that define contracts for the
entry store and for the data layer the cache fronts.
"""

from __future__ import annotations

from .entry_store import EntryStore
from .repository import OrderBy, Predicate, Repository, UnitOfWork

__all__ = ["EntryStore", "OrderBy", "Predicate", "Repository", "UnitOfWork"]
