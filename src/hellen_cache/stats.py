# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Cache statistics and monitoring.

Read-only introspection of the Redis server and of the keys under the global
prefix: health summary, hit rate, memory, key counts per domain, TTLs and the
slow log. Key scans always use SCAN with a cursor, never KEYS.

Usage:
    stats = Stats(connection)

    result = await stats.health()
    if not result.healthy:
        logger.error(f"Cache unhealthy: {result.error}")

    breakdown = await stats.key_breakdown()  # {"user": 120, "lesson": 48, ...}
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from .connection import RedisConnection, translate_errors
from .keys import DOMAIN_PATTERNS, KeyNamespace
from .types.health import HEALTHY, UNHEALTHY, HealthCheckResult

logger = logging.getLogger(__name__)

# SCAN page size hints
_COUNT_SCAN_SIZE = 1000
_LIST_SCAN_SIZE = 100


def format_bytes(value: Any) -> str:
    """Human-readable byte count (B, KB, MB, GB)."""
    size = _as_int(value)
    if size >= 1_073_741_824:
        return f"{round(size / 1_073_741_824, 2)} GB"
    if size >= 1_048_576:
        return f"{round(size / 1_048_576, 2)} MB"
    if size >= 1024:
        return f"{round(size / 1024, 2)} KB"
    return f"{size} B"


def format_duration(ms: int) -> str:
    """Human-readable duration for a millisecond TTL; "N/A" when negative."""
    if ms < 0:
        return "N/A"
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{round(ms / 1000, 1)}s"
    if ms < 3_600_000:
        return f"{round(ms / 60_000, 1)}m"
    return f"{round(ms / 3_600_000, 1)}h"


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def _as_float(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _text(value: Any) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else str(value)


def hit_rate(info: dict[str, Any]) -> float:
    """Keyspace hit rate as a percentage rounded to 2 decimals; 0.0 with no lookups."""
    hits = _as_int(info.get("keyspace_hits"))
    misses = _as_int(info.get("keyspace_misses"))
    total = hits + misses
    return round(hits / total * 100, 2) if total > 0 else 0.0


class Stats:
    """Observability helpers. Everything except health() raises CacheError subclasses."""

    def __init__(
        self, connection: RedisConnection, namespace: KeyNamespace | None = None
    ) -> None:
        self.connection = connection
        self.namespace = namespace or connection.namespace

    async def _info(self, section: str) -> dict[str, Any]:
        redis = await self.connection.connect()
        with translate_errors(f"INFO {section}"):
            return dict(await redis.info(section))

    async def health(self) -> HealthCheckResult:
        """
        Quick health summary: PING, memory usage and total key count.

        Never raises; any failure yields an unhealthy result with the error text.
        """
        start = time.perf_counter()
        try:
            redis = await self.connection.connect()
            with translate_errors("PING"):
                await redis.ping()
            latency_ms = round((time.perf_counter() - start) * 1000, 2)
            memory = await self._info("memory")
            key_count = await self.key_count()
        except Exception as e:
            logger.warning(f"Cache health check failed: {e}")
            return HealthCheckResult(
                healthy=False,
                status=UNHEALTHY,
                namespace=self.namespace.global_prefix,
                error=str(e),
                metadata={"connected": False},
            )

        return HealthCheckResult(
            healthy=True,
            status=HEALTHY,
            namespace=self.namespace.global_prefix,
            metadata={
                "connected": True,
                "latency_ms": latency_ms,
                "memory_used": format_bytes(memory.get("used_memory")),
                "memory_peak": format_bytes(memory.get("used_memory_peak")),
                "key_count": key_count,
            },
        )

    async def detailed(self) -> dict[str, Any]:
        """Hit rate, memory, server, client, command and network statistics."""
        stats = await self._info("stats")
        memory = await self._info("memory")
        server = await self._info("server")
        clients = await self._info("clients")

        return {
            # Hit/miss
            "keyspace_hits": _as_int(stats.get("keyspace_hits")),
            "keyspace_misses": _as_int(stats.get("keyspace_misses")),
            "hit_rate": hit_rate(stats),
            # Memory
            "memory_used": format_bytes(memory.get("used_memory")),
            "memory_peak": format_bytes(memory.get("used_memory_peak")),
            "memory_rss": format_bytes(memory.get("used_memory_rss")),
            "memory_fragmentation": _as_float(memory.get("mem_fragmentation_ratio")),
            # Server
            "redis_version": server.get("redis_version"),
            "uptime_seconds": _as_int(server.get("uptime_in_seconds")),
            "uptime_days": _as_int(server.get("uptime_in_days")),
            # Clients
            "connected_clients": _as_int(clients.get("connected_clients")),
            "blocked_clients": _as_int(clients.get("blocked_clients")),
            # Operations
            "total_commands": _as_int(stats.get("total_commands_processed")),
            "ops_per_sec": _as_int(stats.get("instantaneous_ops_per_sec")),
            # Network
            "total_net_input": format_bytes(stats.get("total_net_input_bytes")),
            "total_net_output": format_bytes(stats.get("total_net_output_bytes")),
        }

    async def key_count(self, pattern: str | None = None) -> int:
        """Count keys matching a logical pattern (all prefixed keys by default)."""
        redis = await self.connection.connect()
        match = self.namespace.prefix(pattern or "*")
        count = 0
        cursor = 0
        with translate_errors("SCAN"):
            while True:
                cursor, keys = await redis.scan(
                    cursor=cursor, match=match, count=_COUNT_SCAN_SIZE
                )
                count += len(keys)
                if int(cursor) == 0:
                    break
        return count

    async def key_breakdown(self) -> dict[str, int]:
        """Key count per known domain. A domain whose scan fails counts as 0."""
        breakdown: dict[str, int] = {}
        for pattern in DOMAIN_PATTERNS:
            domain = pattern.removesuffix(":*")
            try:
                breakdown[domain] = await self.key_count(pattern)
            except Exception as e:
                logger.debug(f"Key count for {pattern} failed: {e}")
                breakdown[domain] = 0
        return breakdown

    async def memory_usage(self, key: str) -> int | None:
        """Bytes used by a key, or None if it does not exist."""
        redis = await self.connection.connect()
        with translate_errors("MEMORY USAGE"):
            usage = await redis.memory_usage(self.namespace.prefix(key))
        return None if usage is None else int(usage)

    async def ttl_info(self, key: str) -> dict[str, Any]:
        redis = await self.connection.connect()
        with translate_errors("PTTL"):
            ttl = int(await redis.pttl(self.namespace.prefix(key)))

        if ttl == -2:
            status = "not_found"
        elif ttl == -1:
            status = "no_expiry"
        elif ttl > 0:
            status = "expires_in"
        else:
            status = "unknown"

        return {
            "key": key,
            "ttl_ms": ttl,
            "status": status,
            "expires_in_human": format_duration(ttl),
        }

    async def list_keys(self, pattern: str, limit: int = 100) -> list[str]:
        """
        Logical keys (prefix removed) matching pattern, at most limit of them.

        For debugging; prefer key_count() in production code.
        """
        redis = await self.connection.connect()
        match = self.namespace.prefix(pattern)
        keys: list[str] = []
        cursor = 0
        with translate_errors("SCAN"):
            while len(keys) < limit:
                cursor, batch = await redis.scan(
                    cursor=cursor, match=match, count=_LIST_SCAN_SIZE
                )
                keys.extend(self.namespace.unprefix(_text(k)) for k in batch)
                if int(cursor) == 0:
                    break
        return keys[:limit]

    async def slowlog(self, count: int = 10) -> list[dict[str, Any]]:
        """Most recent slow log entries."""
        redis = await self.connection.connect()
        with translate_errors("SLOWLOG GET"):
            entries = await redis.slowlog_get(count)

        return [
            {
                "id": entry.get("id"),
                "timestamp": datetime.fromtimestamp(
                    _as_int(entry.get("start_time")), tz=timezone.utc
                ),
                "duration_us": _as_int(entry.get("duration")),
                "command": _text(entry.get("command", b"")),
            }
            for entry in entries
        ]


__all__ = ["Stats", "format_bytes", "format_duration", "hit_rate"]
