# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Hellen Cache - Redis caching and coordination layer.

This library provides the shared caching and distributed-coordination layer
of the Hellen platform, built on redis.asyncio.

Key Features:
    - Namespaced get-or-compute caching with TTL policy
    - Tagged serialization (raw scalars, JSON, restricted pickle)
    - Fixed-window, sliding-window and login-attempt rate limiting
    - Token-based distributed locks with atomic release and extend
    - Health, memory, key-count and slow log introspection
    - Event-driven invalidation of domain caches

Quick Start:
    >>> from hellen_cache import create_cache_layer
    >>>
    >>> async with create_cache_layer() as layer:
    ...     keys = layer.connection.namespace
    ...     user = await layer.cache.fetch(keys.user(42), lambda: load_user(42))
    ...     result = await layer.rate_limiter.check("upload", 42, limit=10)

Main Exports:
    - RedisConnection: Shared connection handle
    - Cache, EntityCache: Key/value and per-entity caching
    - RateLimiter, RateLimitResult, Algorithm: Throttling
    - DistributedLock: Mutual exclusion
    - Stats, HealthCheckResult: Observability
    - Invalidator, DomainEvent: Invalidation
    - Settings: Configuration options

Version: 1.0.0
"""

__version__ = "1.0.0"

from .cache import Cache
from .config import (
    CacheSettings,
    ConnectionSettings,
    LockSettings,
    RateLimitSettings,
    Settings,
)
from .connection import RedisConnection
from .entity import ENTITY_POLICIES, EntityCache
from .exceptions import (
    BackendConnectionError,
    BackendOperationError,
    CacheError,
    ConfigurationError,
    LockAcquisitionError,
    LockError,
    LockNotOwnedError,
    SerializationError,
)
from .invalidation import INVALIDATIONS, DomainEvent, Invalidator
from .keys import DOMAIN_PATTERNS, KeyNamespace
from .layer import CacheLayer, create_cache_layer
from .lock import DistributedLock
from .metrics import CacheMetrics, get_cache_metrics
from .rate_limiter import RateLimiter
from .serializer import KnownField, Serializer
from .stats import Stats
from .types import Algorithm, HealthCheckResult, RateLimitResult

__all__ = [
    "DOMAIN_PATTERNS",
    "ENTITY_POLICIES",
    "INVALIDATIONS",
    "Algorithm",
    "BackendConnectionError",
    "BackendOperationError",
    "Cache",
    "CacheError",
    "CacheLayer",
    "CacheMetrics",
    "CacheSettings",
    "ConfigurationError",
    "ConnectionSettings",
    "DistributedLock",
    "DomainEvent",
    "EntityCache",
    "HealthCheckResult",
    "Invalidator",
    "KeyNamespace",
    "KnownField",
    "LockAcquisitionError",
    "LockError",
    "LockNotOwnedError",
    "LockSettings",
    "RateLimitResult",
    "RateLimitSettings",
    "RateLimiter",
    "RedisConnection",
    "SerializationError",
    "Serializer",
    "Settings",
    "Stats",
    "__version__",
    "create_cache_layer",
    "get_cache_metrics",
]
