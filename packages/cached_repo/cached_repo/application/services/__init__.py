"""Application services for cached_repo."""

from __future__ import annotations

from .async_read_through_cache import AsyncReadThroughCache
from .async_single_flight import AsyncSingleFlightLoader
from .cached_repository import CachedRepository
from .read_through_cache import BaseReadThroughCache, ReadThroughCache
from .single_flight import SingleFlightLoader

__all__ = [
    "AsyncReadThroughCache",
    "AsyncSingleFlightLoader",
    "BaseReadThroughCache",
    "CachedRepository",
    "ReadThroughCache",
    "SingleFlightLoader",
]
