"""Domain enums for cached_repo."""

from __future__ import annotations

from enum import Enum


class RemovalReason(Enum):
    """Why an entry left the entry store."""

    EXPIRED = "expired"
    INVALIDATED = "invalidated"
    EVICTED = "evicted"
    REPLACED = "replaced"
    CLEARED = "cleared"


class LoadOutcome(Enum):
    """Result of a single producer execution."""

    SUCCESS = "success"
    FAILURE = "failure"
