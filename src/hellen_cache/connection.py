# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Shared Redis connection handle for the Hellen cache layer.

One RedisConnection is constructed by the application's composition root and
injected into Cache, RateLimiter, DistributedLock and Stats. It owns:

- A connection pool with bounded socket timeouts
- Ping-verified lazy connection, serialized behind an asyncio lock
- The Lua scripts shipped with the package, loaded with SCRIPT LOAD and run
  with EVALSHA, reloading transparently when the server has lost them
- Translation of redis-py errors into the library's exception hierarchy

Responses are kept as bytes (decode_responses=False) because pickled cache
values are binary.
"""

import asyncio
import contextlib
import logging
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any, ClassVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    ConnectionError,
    NoScriptError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)
from typing_extensions import Self

from .config import DEFAULT_KEY_PREFIX, ConnectionSettings
from .exceptions import BackendConnectionError, BackendOperationError
from .keys import KeyNamespace

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """
    Re-raise redis-py errors as BackendConnectionError / BackendOperationError.

    Usable around awaits inside coroutines:

        with translate_errors("GET"):
            value = await redis.get(key)
    """
    try:
        yield
    except (ConnectionError, RedisTimeoutError, asyncio.TimeoutError) as e:
        raise BackendConnectionError(f"{operation} failed: {e}") from e
    except RedisError as e:
        raise BackendOperationError(f"{operation} failed: {e}") from e


class RedisConnection:
    """
    Long-lived Redis client handle with Lua script management.

    Example:
        async with RedisConnection("redis://localhost:6379") as connection:
            cache = Cache(connection)
            await cache.set("greeting", "hello")
    """

    # Class-level Lua sources loaded from package files
    _lua_scripts: ClassVar[dict[str, str]] = {}

    SCRIPT_NAMES: ClassVar[tuple[str, ...]] = (
        "lock_release",
        "lock_extend",
        "fixed_window",
        "login_attempt",
    )

    @classmethod
    def _load_lua_scripts(cls) -> None:
        """Load Lua scripts from files at class level."""
        if cls._lua_scripts:
            return

        lua_dir = Path(__file__).parent / "lua"
        for script_name in cls.SCRIPT_NAMES:
            script_path = lua_dir / f"{script_name}.lua"
            if script_path.exists():
                cls._lua_scripts[script_name] = script_path.read_text(encoding="utf-8")
            else:
                logger.warning(f"Lua script not found: {script_path}")

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: Any | None = None,
        settings: ConnectionSettings | None = None,
    ) -> None:
        """
        Initialize the connection handle. No I/O happens until first use.

        Args:
            redis_url: Redis connection URL. Overrides settings.redis_url, which
                itself falls back to the REDIS_URL environment variable.
            redis_client: Optional pre-configured async Redis client. An injected
                client is never closed by this handle.
            settings: Pool and timeout settings.
        """
        self.settings = settings or ConnectionSettings(redis_url=redis_url)
        self.redis_url = redis_url or self.settings.redis_url
        self.namespace = KeyNamespace(self.settings.key_prefix or DEFAULT_KEY_PREFIX)

        self._redis: Any | None = redis_client
        self._owned_redis = redis_client is None
        self._pool: ConnectionPool | None = None
        self._connected = False
        self._connection_lock = asyncio.Lock()
        self._script_shas: dict[str, str] = {}

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> Any:
        """
        Return a verified client, connecting on first use.

        Raises:
            BackendConnectionError: If the server cannot be reached in time.
        """
        if self._redis is not None and self._connected:
            return self._redis

        async with self._connection_lock:
            if self._redis is not None and self._connected:
                return self._redis

            created_pool = False
            if self._redis is None:
                self._pool = ConnectionPool.from_url(
                    self.redis_url,
                    max_connections=self.settings.max_connections,
                    decode_responses=False,
                    socket_connect_timeout=self.settings.socket_connect_timeout,
                    socket_timeout=self.settings.socket_timeout,
                    retry_on_timeout=True,
                    health_check_interval=self.settings.health_check_interval,
                )
                self._redis = Redis(connection_pool=self._pool)
                created_pool = True

            try:
                with translate_errors("PING"):
                    await asyncio.wait_for(
                        self._redis.ping(), timeout=self.settings.connect_timeout
                    )
                    await asyncio.wait_for(
                        self._load_scripts(), timeout=self.settings.connect_timeout
                    )
            except BackendConnectionError:
                logger.warning(f"Redis connection to {self.redis_url} failed")
                if created_pool:
                    await self._discard_owned_client()
                raise

            self._connected = True
            if created_pool:
                logger.info(
                    f"Created Redis connection pool for {self.redis_url} "
                    f"(max_connections={self.settings.max_connections})"
                )
            return self._redis

    async def _discard_owned_client(self) -> None:
        redis, pool = self._redis, self._pool
        self._redis = None
        self._pool = None
        self._connected = False
        with contextlib.suppress(Exception):
            if redis is not None:
                await redis.aclose()
            if pool is not None:
                await pool.disconnect()

    async def _load_scripts(self) -> None:
        """Load Lua scripts into Redis."""
        if self._redis is None:
            raise RuntimeError("Redis client not initialized")

        self.__class__._load_lua_scripts()

        for script_name, script_source in self._lua_scripts.items():
            sha = await self._redis.script_load(script_source)
            self._script_shas[script_name] = sha.decode() if isinstance(sha, bytes) else sha

    async def evalsha(
        self, script_name: str, keys: Sequence[str], args: Sequence[Any]
    ) -> Any:
        """
        Run a packaged Lua script atomically, reloading it on NoScriptError.

        When Redis restarts or fails over, loaded scripts are lost. The scripts
        are reloaded and the call retried once.

        Raises:
            BackendConnectionError, BackendOperationError: On store failure.
        """
        redis = await self.connect()

        with translate_errors(f"EVALSHA {script_name}"):
            script_sha = self._script_shas.get(script_name)
            if not script_sha:
                await self._load_scripts()
                script_sha = self._script_shas[script_name]

            try:
                return await redis.evalsha(script_sha, len(keys), *keys, *args)
            except NoScriptError:
                logger.warning(
                    f"Script '{script_name}' not found in Redis (SHA: {script_sha}). "
                    f"Reloading all Lua scripts..."
                )
                self._script_shas.clear()
                await self._load_scripts()

                new_sha = self._script_shas[script_name]
                logger.info(f"Scripts reloaded. Retrying with new SHA: {new_sha}")
                return await redis.evalsha(new_sha, len(keys), *keys, *args)

    async def close(self, timeout: float = 2.5) -> None:
        """Close the pool if this handle created it."""
        if not self._owned_redis:
            self._connected = False
            return
        if self._redis is None:
            return
        try:
            await asyncio.wait_for(self._discard_owned_client(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Redis connection cleanup timed out")

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()


__all__ = ["RedisConnection", "translate_errors"]
