"""Domain entities for cached_repo."""

from __future__ import annotations

from .cache_entry import CacheEntry
from .in_flight import InFlightComputation

__all__ = [
    "CacheEntry",
    "InFlightComputation",
]
