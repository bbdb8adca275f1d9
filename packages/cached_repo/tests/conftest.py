"""Shared fixtures for cached_repo tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from itertools import count

import pytest
import pytest_asyncio
from cached_repo.application.lifecycle import shutdown_cache
from cached_repo.application.services import AsyncReadThroughCache, ReadThroughCache
from cached_repo.config import CachedRepoConfig, get_config

_cache_names = count(1)


@pytest.fixture(autouse=True)
def _reset_process_state() -> Generator[None]:
    """Keep the process cache and cached configuration out of other tests."""
    get_config.cache_clear()
    yield
    shutdown_cache()
    get_config.cache_clear()


@pytest.fixture
def config() -> CachedRepoConfig:
    """Configuration with a short TTL and the background sweep disabled."""
    return CachedRepoConfig(
        cache={"default_ttl_seconds": 300.0},
        enable_auto_cleanup=False,
    )


@pytest.fixture
def cache_name() -> str:
    """Unique cache name so metric series do not leak between tests."""
    return f"test-cache-{next(_cache_names)}"


@pytest.fixture
def cache(config: CachedRepoConfig, cache_name: str) -> Generator[ReadThroughCache]:
    """Thread-based cache closed after the test."""
    with ReadThroughCache(config, name=cache_name) as cache:
        yield cache


@pytest_asyncio.fixture
async def async_cache(
    config: CachedRepoConfig, cache_name: str
) -> AsyncGenerator[AsyncReadThroughCache]:
    """Asyncio cache closed after the test."""
    async with AsyncReadThroughCache(config, name=cache_name) as cache:
        yield cache
