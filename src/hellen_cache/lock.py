# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Distributed locking on Redis with automatic expiry.

Acquisition is a single ``SET key token NX PX ttl``. Release and extension run
as Lua scripts that compare the stored token before deleting or re-expiring,
so a holder whose lock already expired cannot free or prolong someone else's.

Locks always carry a TTL (capped at LockSettings.max_ttl): a crashed holder
blocks others for at most that long. Acquisition fails closed; if Redis is
unreachable, acquire() raises LockAcquisitionError rather than letting two
workers into the critical section.

Example:
    lock = DistributedLock(connection)

    result = await lock.with_lock("process:lesson:123", lambda: process(123))

    async with lock.hold(keys.job_resource("transcribe", job_id)) as token:
        await transcribe(job_id)
"""

import asyncio
import base64
import contextlib
import inspect
import logging
import secrets
from collections.abc import AsyncIterator, Callable
from typing import Any

from .config import LockSettings
from .connection import RedisConnection, translate_errors
from .exceptions import CacheError, LockAcquisitionError, LockNotOwnedError
from .keys import KeyNamespace
from .metrics import CacheMetrics, get_cache_metrics

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """16 random bytes, URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(16)).rstrip(b"=").decode("ascii")


class DistributedLock:
    """Token-based mutual exclusion across processes and nodes."""

    def __init__(
        self,
        connection: RedisConnection,
        namespace: KeyNamespace | None = None,
        settings: LockSettings | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self.connection = connection
        self.namespace = namespace or connection.namespace
        self.settings = settings or LockSettings()
        self.metrics = metrics or get_cache_metrics()

    def _key(self, resource: str) -> str:
        return self.namespace.prefix(self.namespace.lock(resource))

    def _clamp(self, ttl: int | None) -> int:
        ttl = ttl if ttl is not None else self.settings.default_ttl
        if ttl <= 0:
            raise ValueError(f"Lock TTL must be positive, got {ttl}")
        return min(ttl, self.settings.max_ttl)

    async def acquire(
        self,
        resource: str,
        ttl: int | None = None,
        retry_count: int = 0,
        retry_delay: int | None = None,
    ) -> str:
        """
        Acquire the lock on resource.

        Args:
            resource: Logical resource name
            ttl: Lock TTL in ms (default settings.default_ttl, capped at max_ttl)
            retry_count: Extra attempts after the first one fails on contention
            retry_delay: Sleep between attempts in ms (default settings.retry_delay)

        Returns:
            The lock token, needed for release() and extend()

        Raises:
            LockAcquisitionError: If the lock stayed held through every attempt,
                or the store failed
        """
        ttl = self._clamp(ttl)
        retry_delay = retry_delay if retry_delay is not None else self.settings.retry_delay
        key = self._key(resource)
        token = generate_token()
        attempts_left = retry_count

        while True:
            try:
                redis = await self.connection.connect()
                with translate_errors("SET NX"):
                    acquired = await redis.set(key, token, nx=True, px=ttl)
            except CacheError as e:
                logger.warning(f"Failed to acquire lock {resource}: {e}")
                self.metrics.record_lock("acquire", "error")
                raise LockAcquisitionError(
                    resource, f"Lock backend unavailable for {resource}: {e}"
                ) from e

            if acquired:
                self.metrics.record_lock("acquire", "acquired")
                logger.debug(f"Acquired lock {resource} (ttl={ttl}ms)")
                return token

            if attempts_left <= 0:
                self.metrics.record_lock("acquire", "locked")
                raise LockAcquisitionError(resource)

            attempts_left -= 1
            await asyncio.sleep(retry_delay / 1000.0)

    async def release(self, resource: str, token: str) -> None:
        """
        Release the lock if token still owns it.

        Raises:
            LockNotOwnedError: If the token does not hold the lock, or the store
                failed (ownership could not be confirmed)
        """
        try:
            released = await self.connection.evalsha(
                "lock_release", [self._key(resource)], [token]
            )
        except CacheError as e:
            logger.warning(f"Failed to release lock {resource}: {e}")
            self.metrics.record_lock("release", "error")
            raise LockNotOwnedError(resource, f"Could not release lock {resource}: {e}") from e

        if int(released) != 1:
            self.metrics.record_lock("release", "not_owner")
            raise LockNotOwnedError(resource)
        self.metrics.record_lock("release", "released")

    async def extend(self, resource: str, token: str, ttl: int | None = None) -> None:
        """
        Reset the lock's TTL if token still owns it.

        Raises:
            LockNotOwnedError: If the token does not hold the lock, or the store failed
        """
        ttl = self._clamp(ttl)
        try:
            extended = await self.connection.evalsha(
                "lock_extend", [self._key(resource)], [token, ttl]
            )
        except CacheError as e:
            logger.warning(f"Failed to extend lock {resource}: {e}")
            self.metrics.record_lock("extend", "error")
            raise LockNotOwnedError(resource, f"Could not extend lock {resource}: {e}") from e

        if int(extended) != 1:
            self.metrics.record_lock("extend", "not_owner")
            raise LockNotOwnedError(resource)
        self.metrics.record_lock("extend", "extended")

    async def with_lock(
        self,
        resource: str,
        fn: Callable[[], Any],
        ttl: int | None = None,
        retry_count: int | None = None,
        retry_delay: int | None = None,
        on_locked: Callable[[], Any] | None = None,
    ) -> Any:
        """
        Run fn (sync or async) while holding the lock and return its result.

        The lock is released on every exit path. A failed release is logged and
        never replaces fn's result or exception.

        If the lock cannot be acquired, returns on_locked() when given,
        otherwise raises LockAcquisitionError.
        """
        if retry_count is None:
            retry_count = self.settings.default_retry_count

        try:
            token = await self.acquire(
                resource, ttl=ttl, retry_count=retry_count, retry_delay=retry_delay
            )
        except LockAcquisitionError:
            if on_locked is None:
                raise
            result = on_locked()
            if inspect.isawaitable(result):
                result = await result
            return result

        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            await self._release_quietly(resource, token)

    async def _release_quietly(self, resource: str, token: str) -> None:
        try:
            await self.release(resource, token)
        except LockNotOwnedError as e:
            logger.warning(f"Lock {resource} was not released cleanly: {e}")

    @contextlib.asynccontextmanager
    async def hold(
        self,
        resource: str,
        ttl: int | None = None,
        retry_count: int = 0,
        retry_delay: int | None = None,
    ) -> AsyncIterator[str]:
        """
        Async context manager form of acquire/release, yielding the token.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired
        """
        token = await self.acquire(
            resource, ttl=ttl, retry_count=retry_count, retry_delay=retry_delay
        )
        try:
            yield token
        finally:
            await self._release_quietly(resource, token)

    # ==========================================================================
    # Inspection and administration
    # ==========================================================================

    async def is_locked(self, resource: str) -> bool:
        redis = await self.connection.connect()
        with translate_errors("EXISTS"):
            return bool(await redis.exists(self._key(resource)))

    async def ttl(self, resource: str) -> int:
        """Remaining lock TTL in ms; -2 when not locked."""
        redis = await self.connection.connect()
        with translate_errors("PTTL"):
            return int(await redis.pttl(self._key(resource)))

    async def force_release(self, resource: str) -> None:
        """
        Delete the lock without checking ownership.

        For administration only. The current holder keeps running unprotected.
        """
        redis = await self.connection.connect()
        with translate_errors("DEL"):
            await redis.delete(self._key(resource))
        logger.warning(f"Force-released lock {resource}")

    # ==========================================================================
    # Background jobs
    # ==========================================================================

    async def acquire_job_lock(
        self,
        job_type: str,
        job_id: Any,
        ttl: int | None = None,
        retry_count: int = 0,
        retry_delay: int | None = None,
    ) -> str:
        """Lock a background job so it is processed by one worker at a time."""
        return await self.acquire(
            self.namespace.job_resource(job_type, job_id),
            ttl=ttl,
            retry_count=retry_count,
            retry_delay=retry_delay,
        )

    async def release_job_lock(self, job_type: str, job_id: Any, token: str) -> None:
        await self.release(self.namespace.job_resource(job_type, job_id), token)


__all__ = ["DistributedLock", "generate_token"]
