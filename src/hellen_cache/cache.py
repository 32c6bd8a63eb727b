# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Generic get-or-compute cache on top of the shared Redis connection.

Every key passed in is a *logical* key built with KeyNamespace; the global
prefix is added here. Values go through Serializer, so anything JSON or
pickle can represent may be cached.

Example:
    cache = Cache(connection)
    keys = connection.namespace

    profile = await cache.fetch(
        keys.user(user_id),
        lambda: load_profile(user_id),
        ttl=Cache.LONG_TTL,
    )

fetch() is not single-flight: concurrent misses on the same key each run the
compute function and the last write wins.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, ClassVar

from .config import HOUR_MS, MINUTE_MS, CacheSettings
from .connection import RedisConnection, translate_errors
from .exceptions import CacheError
from .keys import KeyNamespace
from .metrics import CacheMetrics, get_cache_metrics
from .serializer import Serializer

logger = logging.getLogger(__name__)

# Keys deleted per DEL command during pattern deletion
_DELETE_BATCH = 500

# SCAN page size hint
_SCAN_COUNT = 1000


async def _call(fn: Callable[[], Any]) -> Any:
    """Call a sync or async zero-argument function and return its result."""
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class Cache:
    """
    Namespaced key/value cache with TTL policy.

    Backend failures raise BackendConnectionError or BackendOperationError,
    except in fetch(), which degrades to computing the value, and
    get_or_none(), which maps them to None.
    """

    DEFAULT_TTL: ClassVar[int] = 15 * MINUTE_MS
    SHORT_TTL: ClassVar[int] = 5 * MINUTE_MS
    LONG_TTL: ClassVar[int] = HOUR_MS
    DAY_TTL: ClassVar[int] = 24 * HOUR_MS

    def __init__(
        self,
        connection: RedisConnection,
        namespace: KeyNamespace | None = None,
        serializer: Serializer | None = None,
        default_ttl: int | None = None,
        settings: CacheSettings | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self.connection = connection
        self.namespace = namespace or connection.namespace
        self.serializer = serializer or Serializer()
        self.settings = settings or CacheSettings()
        self.default_ttl = self.settings.default_ttl if default_ttl is None else default_ttl
        if self.default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {self.default_ttl}")
        self.metrics = metrics or get_cache_metrics()

        # Strong references to in-flight stale refreshes
        self._refresh_tasks: set[asyncio.Task[Any]] = set()
        self._refreshing: set[str] = set()

    def _ttl(self, ttl: int | None) -> int:
        ttl = ttl if ttl is not None else self.default_ttl
        if ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl}")
        return ttl

    # ==========================================================================
    # Get-or-compute
    # ==========================================================================

    async def fetch(
        self,
        key: str,
        compute_fn: Callable[[], Any],
        ttl: int | None = None,
        stale_ttl: int | None = None,
    ) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Logical cache key
            compute_fn: Zero-argument callable, sync or async, producing the value
            ttl: TTL in milliseconds for a freshly computed value
            stale_ttl: When set, a hit whose remaining TTL has dropped below
                stale_ttl is returned immediately while a background task
                recomputes and rewrites it

        Returns:
            The cached or freshly computed value

        Raises:
            Whatever compute_fn raises. Store failures are logged and treated
            as a miss (read) or ignored (write).
            ValueError: If ttl is not positive
        """
        self._ttl(ttl)
        try:
            data = await self._get_raw(key)
        except CacheError as e:
            logger.warning(f"Cache read error for {key}: {e}, computing fresh value")
            data = None

        if data is not None:
            self.metrics.record_request(hit=True)
            logger.debug(f"Cache hit: {key}")
            if stale_ttl is not None:
                await self._maybe_refresh_stale(key, compute_fn, ttl, stale_ttl)
            return self.serializer.decode(data)

        self.metrics.record_request(hit=False)
        logger.debug(f"Cache miss: {key}")
        return await self._compute_and_cache(key, compute_fn, ttl)

    async def _compute_and_cache(
        self, key: str, compute_fn: Callable[[], Any], ttl: int | None
    ) -> Any:
        value = await _call(compute_fn)
        try:
            await self.set(key, value, ttl=ttl)
        except CacheError as e:
            logger.warning(f"Failed to cache {key}: {e}")
        return value

    async def _maybe_refresh_stale(
        self, key: str, compute_fn: Callable[[], Any], ttl: int | None, stale_ttl: int
    ) -> None:
        if key in self._refreshing:
            return
        try:
            remaining = await self.ttl(key)
        except CacheError as e:
            logger.debug(f"Skipping stale check for {key}: {e}")
            return
        if not 0 < remaining < stale_ttl:
            return

        logger.debug(f"Refreshing stale entry {key} ({remaining}ms left)")
        self._refreshing.add(key)
        task = asyncio.create_task(self._refresh(key, compute_fn, ttl))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh(
        self, key: str, compute_fn: Callable[[], Any], ttl: int | None
    ) -> None:
        try:
            await self._compute_and_cache(key, compute_fn, ttl)
        except Exception as e:
            logger.error(f"Background refresh failed for {key}: {e}")
        finally:
            self._refreshing.discard(key)

    # ==========================================================================
    # Basic operations
    # ==========================================================================

    async def _get_raw(self, key: str) -> bytes | None:
        redis = await self.connection.connect()
        with translate_errors("GET"):
            return await redis.get(self.namespace.prefix(key))

    async def get(self, key: str) -> Any:
        """Return the decoded value, or None when the key is missing."""
        data = await self._get_raw(key)
        if data is None:
            return None
        return self.serializer.decode(data)

    async def get_or_none(self, key: str) -> Any:
        """Like get(), but store failures are logged and return None."""
        try:
            return await self.get(key)
        except CacheError as e:
            logger.warning(f"Cache read error for {key}: {e}")
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        """
        Store a value.

        Args:
            key: Logical cache key
            value: Any serializable value
            ttl: TTL in milliseconds (defaults to default_ttl)
            nx: Only set if the key does not exist
            xx: Only set if the key already exists

        Returns:
            True if written, False if an nx/xx condition prevented the write

        Raises:
            ValueError: If ttl is not positive
        """
        px = self._ttl(ttl)
        encoded = self.serializer.encode(value)
        redis = await self.connection.connect()
        with translate_errors("SET"):
            result = await redis.set(
                self.namespace.prefix(key),
                encoded,
                px=px,
                nx=nx,
                xx=xx,
            )
        return bool(result)

    async def delete(self, key: str) -> int:
        redis = await self.connection.connect()
        with translate_errors("DEL"):
            return int(await redis.delete(self.namespace.prefix(key)))

    async def delete_many(self, keys: Iterable[str]) -> int:
        """Delete several logical keys in one round trip; returns how many existed."""
        prefixed = [self.namespace.prefix(key) for key in keys]
        if not prefixed:
            return 0
        redis = await self.connection.connect()
        with translate_errors("DEL"):
            return int(await redis.delete(*prefixed))

    async def exists(self, key: str) -> bool:
        redis = await self.connection.connect()
        with translate_errors("EXISTS"):
            return bool(await redis.exists(self.namespace.prefix(key)))

    async def ttl(self, key: str) -> int:
        """Remaining TTL in milliseconds; -1 without expiry, -2 when missing."""
        redis = await self.connection.connect()
        with translate_errors("PTTL"):
            return int(await redis.pttl(self.namespace.prefix(key)))

    async def expire(self, key: str, ttl: int) -> bool:
        redis = await self.connection.connect()
        with translate_errors("PEXPIRE"):
            return bool(await redis.pexpire(self.namespace.prefix(key), ttl))

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def incrby(self, key: str, amount: int) -> int:
        """Increment a counter, creating it at 0 first. Counters are stored untagged."""
        redis = await self.connection.connect()
        with translate_errors("INCRBY"):
            return int(await redis.incrby(self.namespace.prefix(key), amount))

    async def ping(self) -> bool:
        redis = await self.connection.connect()
        with translate_errors("PING"):
            return bool(await redis.ping())

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a logical SCAN pattern.

        Uses SCAN, never KEYS, so it is safe on a production server but may be
        slow with many keys. Keys written while the scan runs may survive.
        """
        redis = await self.connection.connect()
        deleted = 0
        batch: list[bytes] = []
        with translate_errors("SCAN/DEL"):
            async for raw_key in redis.scan_iter(
                match=self.namespace.prefix(pattern), count=_SCAN_COUNT
            ):
                batch.append(raw_key)
                if len(batch) >= _DELETE_BATCH:
                    deleted += int(await redis.delete(*batch))
                    batch = []
            if batch:
                deleted += int(await redis.delete(*batch))
        logger.debug(f"Deleted {deleted} keys matching {pattern}")
        return deleted

    async def flush_all(self) -> int:
        """Delete every key under the global prefix. Other applications' keys are untouched."""
        deleted = await self.delete_pattern("*")
        logger.warning(f"Flushed {deleted} keys under prefix {self.namespace.global_prefix}")
        return deleted

    async def info(self, section: str = "stats") -> dict[str, Any]:
        redis = await self.connection.connect()
        with translate_errors("INFO"):
            return dict(await redis.info(section))

    # ==========================================================================
    # Hash operations
    # ==========================================================================

    async def hset(self, key: str, field: str, value: Any) -> int:
        redis = await self.connection.connect()
        with translate_errors("HSET"):
            return int(
                await redis.hset(
                    self.namespace.prefix(key), field, self.serializer.encode(value)
                )
            )

    async def hmset(self, key: str, mapping: Mapping[Any, Any]) -> int:
        """Set several hash fields at once. Field names are stringified."""
        encoded = {str(k): self.serializer.encode(v) for k, v in mapping.items()}
        if not encoded:
            return 0
        redis = await self.connection.connect()
        with translate_errors("HSET"):
            return int(await redis.hset(self.namespace.prefix(key), mapping=encoded))

    async def hget(self, key: str, field: str) -> Any:
        redis = await self.connection.connect()
        with translate_errors("HGET"):
            data = await redis.hget(self.namespace.prefix(key), field)
        return None if data is None else self.serializer.decode(data)

    async def hgetall(self, key: str) -> dict[str, Any]:
        redis = await self.connection.connect()
        with translate_errors("HGETALL"):
            data = await redis.hgetall(self.namespace.prefix(key))
        return {_text(k): self.serializer.decode(v) for k, v in data.items()}

    async def hdel(self, key: str, field: str) -> int:
        redis = await self.connection.connect()
        with translate_errors("HDEL"):
            return int(await redis.hdel(self.namespace.prefix(key), field))

    # ==========================================================================
    # List operations
    # ==========================================================================

    async def lpush(self, key: str, *values: Any) -> int:
        """Push values to the head of a list; returns the new length."""
        if not values:
            raise ValueError("lpush requires at least one value")
        encoded = [self.serializer.encode(v) for v in values]
        redis = await self.connection.connect()
        with translate_errors("LPUSH"):
            return int(await redis.lpush(self.namespace.prefix(key), *encoded))

    async def lrange(self, key: str, start: int, stop: int) -> list[Any]:
        redis = await self.connection.connect()
        with translate_errors("LRANGE"):
            values = await redis.lrange(self.namespace.prefix(key), start, stop)
        return [self.serializer.decode(v) for v in values]

    async def ltrim(self, key: str, start: int, stop: int) -> bool:
        redis = await self.connection.connect()
        with translate_errors("LTRIM"):
            return bool(await redis.ltrim(self.namespace.prefix(key), start, stop))

    # ==========================================================================
    # Set operations
    # ==========================================================================

    async def sadd(self, key: str, *members: Any) -> int:
        if not members:
            raise ValueError("sadd requires at least one member")
        encoded = [self.serializer.encode(m) for m in members]
        redis = await self.connection.connect()
        with translate_errors("SADD"):
            return int(await redis.sadd(self.namespace.prefix(key), *encoded))

    async def smembers(self, key: str) -> list[Any]:
        redis = await self.connection.connect()
        with translate_errors("SMEMBERS"):
            members = await redis.smembers(self.namespace.prefix(key))
        return [self.serializer.decode(m) for m in members]

    async def sismember(self, key: str, member: Any) -> bool:
        redis = await self.connection.connect()
        with translate_errors("SISMEMBER"):
            return bool(
                await redis.sismember(
                    self.namespace.prefix(key), self.serializer.encode(member)
                )
            )

    # ==========================================================================
    # Sorted set operations
    # ==========================================================================

    async def zadd(self, key: str, score: float, member: Any) -> int:
        redis = await self.connection.connect()
        with translate_errors("ZADD"):
            return int(
                await redis.zadd(
                    self.namespace.prefix(key), {self.serializer.encode(member): score}
                )
            )

    async def zrangebyscore(
        self,
        key: str,
        min_score: float | str,
        max_score: float | str,
        withscores: bool = False,
    ) -> list[Any]:
        """
        Members with scores between min_score and max_score, lowest first.

        With withscores=True, returns (member, score) tuples.
        """
        redis = await self.connection.connect()
        with translate_errors("ZRANGEBYSCORE"):
            values = await redis.zrangebyscore(
                self.namespace.prefix(key), min_score, max_score, withscores=withscores
            )
        return self._decode_members(values, withscores)

    async def zrevrange(
        self, key: str, start: int, stop: int, withscores: bool = False
    ) -> list[Any]:
        """Members by rank, highest score first."""
        redis = await self.connection.connect()
        with translate_errors("ZREVRANGE"):
            values = await redis.zrevrange(
                self.namespace.prefix(key), start, stop, withscores=withscores
            )
        return self._decode_members(values, withscores)

    def _decode_members(self, values: list[Any], withscores: bool) -> list[Any]:
        if withscores:
            return [(self.serializer.decode(m), float(s)) for m, s in values]
        return [self.serializer.decode(m) for m in values]


__all__ = ["Cache"]
