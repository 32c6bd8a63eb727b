# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Composition root helper.

Wires one RedisConnection into every component so the application holds a
single explicitly constructed handle instead of a hidden global.
"""

from dataclasses import dataclass
from typing import Any

from typing_extensions import Self

from .cache import Cache
from .config import Settings
from .connection import RedisConnection
from .invalidation import Invalidator
from .lock import DistributedLock
from .metrics import CacheMetrics
from .rate_limiter import RateLimiter
from .stats import Stats


@dataclass
class CacheLayer:
    """All components sharing one connection. Use as an async context manager."""

    connection: RedisConnection
    cache: Cache
    rate_limiter: RateLimiter
    lock: DistributedLock
    stats: Stats
    invalidator: Invalidator

    async def close(self) -> None:
        await self.connection.close()

    async def __aenter__(self) -> Self:
        await self.connection.connect()
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()


def create_cache_layer(
    settings: Settings | None = None,
    redis_client: Any | None = None,
    metrics: CacheMetrics | None = None,
) -> CacheLayer:
    """
    Factory function to create the cache layer with proper dependency injection.

    Args:
        settings: Optional settings (defaults to Settings.from_env())
        redis_client: Optional pre-configured async Redis client, never closed
            by the layer
        metrics: Optional metrics (defaults to the process-wide counters)

    Returns:
        Configured CacheLayer. No I/O happens until first use or ``async with``.
    """
    if settings is None:
        settings = Settings.from_env()

    connection = RedisConnection(redis_client=redis_client, settings=settings.connection)
    cache = Cache(connection, settings=settings.cache, metrics=metrics)

    return CacheLayer(
        connection=connection,
        cache=cache,
        rate_limiter=RateLimiter(connection, settings=settings.rate_limit, metrics=metrics),
        lock=DistributedLock(connection, settings=settings.lock, metrics=metrics),
        stats=Stats(connection),
        invalidator=Invalidator(cache),
    )


__all__ = ["CacheLayer", "create_cache_layer"]
