"""Monitoring infrastructure for cached_repo."""

from __future__ import annotations

from .metrics import CacheMetricsCollector

__all__ = ["CacheMetricsCollector"]
