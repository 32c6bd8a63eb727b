# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Rate limiting on Redis atomic primitives.

Two algorithms are available:

- **Fixed window** (default): a counter incremented and given its expiry in one
  Lua script. Simple and cheap, but allows up to twice the limit across a
  window boundary.
- **Sliding window**: a sorted set of request timestamps trimmed, appended,
  counted and re-expired in one MULTI/EXEC transaction. Every request is
  recorded, including denied ones, so a client that keeps hammering stays
  throttled until it backs off for a full window.

A dedicated login limiter counts failed attempts over a counting window and
locks the identifier out for a longer period once the threshold is reached.

Failure policy: any store failure **allows** the request (fail-open), logs a
warning and increments ``hellen_cache_rate_limit_fail_open_total``. Losing the
limiter should never take authentication or the API down with it.

Example:
    limiter = RateLimiter(connection)

    result = await limiter.check("upload", user_id, limit=10, window=60_000)
    if not result.allowed:
        raise TooManyRequests(retry_after=result.retry_after_seconds)
"""

import logging
import secrets
import time
from typing import Any

from .config import RateLimitSettings
from .connection import RedisConnection, translate_errors
from .exceptions import CacheError
from .keys import KeyNamespace
from .metrics import CacheMetrics, get_cache_metrics
from .types.rate_limit import Algorithm, RateLimitResult

logger = logging.getLogger(__name__)

# Metric label for login checks
_LOGIN = "login"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Fixed-window, sliding-window and login-attempt throttling.

    All windows and retry delays are in milliseconds.
    """

    def __init__(
        self,
        connection: RedisConnection,
        namespace: KeyNamespace | None = None,
        settings: RateLimitSettings | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self.connection = connection
        self.namespace = namespace or connection.namespace
        self.settings = settings or RateLimitSettings()
        self.metrics = metrics or get_cache_metrics()

    async def check(
        self,
        scope: str,
        identifier: Any,
        limit: int | None = None,
        window: int | None = None,
        algorithm: Algorithm = Algorithm.FIXED,
    ) -> RateLimitResult:
        """
        Count one request against (scope, identifier) and decide whether it may proceed.

        Args:
            scope: Category of the limited action (e.g. "upload", "api")
            identifier: Who is being limited (user ID, IP address, ...)
            limit: Requests allowed per window (default settings.default_limit)
            window: Window length in ms (default settings.default_window)
            algorithm: Algorithm.FIXED or Algorithm.SLIDING

        Returns:
            RateLimitResult. Never raises on store failure.

        Raises:
            ValueError: If limit or window is not positive
        """
        limit = limit if limit is not None else self.settings.default_limit
        window = window if window is not None else self.settings.default_window
        if limit <= 0 or window <= 0:
            raise ValueError(f"limit and window must be positive, got {limit}/{window}")

        algorithm = Algorithm(algorithm)
        key = self.namespace.prefix(self.namespace.rate_limit(scope, identifier))

        try:
            if algorithm is Algorithm.SLIDING:
                result = await self._sliding_window(key, limit, window)
            else:
                result = await self._fixed_window(key, limit, window)
        except CacheError as e:
            return self._fail_open(algorithm.value, scope, identifier, limit, algorithm, e)

        self.metrics.record_decision(algorithm.value, result.allowed)
        if not result.allowed:
            logger.debug(
                f"Rate limit exceeded for {scope}:{identifier} "
                f"({algorithm.value}, retry in {result.retry_after_ms}ms)"
            )
        return result

    async def _fixed_window(self, key: str, limit: int, window: int) -> RateLimitResult:
        count, ttl = await self.connection.evalsha("fixed_window", [key], [window])
        count, ttl = int(count), int(ttl)

        if count <= limit:
            return RateLimitResult(
                allowed=True,
                remaining=limit - count,
                limit=limit,
                algorithm=Algorithm.FIXED,
            )
        return RateLimitResult(
            allowed=False,
            remaining=0,
            retry_after_ms=ttl if ttl > 0 else window,
            limit=limit,
            algorithm=Algorithm.FIXED,
        )

    async def _sliding_window(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = _now_ms()
        member = f"{now}:{secrets.token_hex(8)}"

        redis = await self.connection.connect()
        with translate_errors("MULTI sliding window"):
            async with redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, "-inf", now - window)
                pipe.zadd(key, {member: now})
                pipe.zcard(key)
                pipe.pexpire(key, window)
                _, _, count, _ = await pipe.execute()

        count = int(count)
        if count <= limit:
            return RateLimitResult(
                allowed=True,
                remaining=limit - count,
                limit=limit,
                algorithm=Algorithm.SLIDING,
            )
        return RateLimitResult(
            allowed=False,
            remaining=0,
            retry_after_ms=window,
            limit=limit,
            algorithm=Algorithm.SLIDING,
        )

    def _fail_open(
        self,
        label: str,
        scope: str,
        identifier: Any,
        limit: int,
        algorithm: Algorithm,
        error: Exception,
    ) -> RateLimitResult:
        logger.warning(
            f"Rate limit check failed for {scope}:{identifier}, allowing request: {error}"
        )
        self.metrics.record_fail_open(label)
        return RateLimitResult(
            allowed=True, remaining=limit, limit=limit, algorithm=algorithm
        )

    # ==========================================================================
    # Login attempts
    # ==========================================================================

    async def check_login(self, identifier: Any) -> RateLimitResult:
        """
        Record a login attempt for identifier (email, IP, ...).

        The first settings.login_limit attempts inside the counting window are
        allowed. The attempt that reaches the limit pushes the counter's expiry
        out to the lockout period; every later attempt is denied with the time
        left on the lockout. Call reset_login_attempts() after a successful
        login.
        """
        s = self.settings
        key = self.namespace.prefix(self.namespace.login_attempts(identifier))

        try:
            allowed, value = await self.connection.evalsha(
                "login_attempt", [key], [s.login_limit, s.login_window, s.login_lockout]
            )
        except CacheError as e:
            if s.login_fail_open:
                return self._fail_open(
                    _LOGIN, "login", identifier, s.login_limit, Algorithm.FIXED, e
                )
            logger.warning(f"Login check failed for {identifier}, denying attempt: {e}")
            self.metrics.record_decision(_LOGIN, False)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_ms=s.login_window,
                limit=s.login_limit,
                algorithm=Algorithm.FIXED,
            )

        if int(allowed) == 1:
            result = RateLimitResult(
                allowed=True,
                remaining=int(value),
                limit=s.login_limit,
                algorithm=Algorithm.FIXED,
            )
        else:
            ttl = int(value)
            result = RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_ms=ttl if ttl > 0 else s.login_lockout,
                limit=s.login_limit,
                algorithm=Algorithm.FIXED,
            )
            logger.debug(f"Login locked out for {identifier} ({result.retry_after_ms}ms)")

        self.metrics.record_decision(_LOGIN, result.allowed)
        return result

    async def reset_login_attempts(self, identifier: Any) -> None:
        """Clear the login counter, typically after a successful login."""
        key = self.namespace.prefix(self.namespace.login_attempts(identifier))
        redis = await self.connection.connect()
        with translate_errors("DEL"):
            await redis.delete(key)

    # ==========================================================================
    # Convenience and inspection
    # ==========================================================================

    async def check_api(self, user_id: Any) -> RateLimitResult:
        """API request limit: settings.api_limit per settings.api_window."""
        return await self.check(
            "api",
            user_id,
            limit=self.settings.api_limit,
            window=self.settings.api_window,
        )

    async def get_usage(
        self,
        scope: str,
        identifier: Any,
        limit: int | None = None,
        algorithm: Algorithm = Algorithm.FIXED,
        window: int | None = None,
    ) -> dict[str, int]:
        """
        Current usage of a window without counting a request.

        Returns:
            Dict with ``current``, ``remaining`` and ``resets_in_ms``

        Raises:
            BackendConnectionError, BackendOperationError: On store failure
        """
        limit = limit if limit is not None else self.settings.default_limit
        key = self.namespace.prefix(self.namespace.rate_limit(scope, identifier))
        redis = await self.connection.connect()

        with translate_errors("usage"):
            if Algorithm(algorithm) is Algorithm.SLIDING:
                window = window if window is not None else self.settings.default_window
                current = int(await redis.zcount(key, _now_ms() - window, "+inf"))
            else:
                raw = await redis.get(key)
                current = int(raw) if raw is not None else 0
            ttl = int(await redis.pttl(key))

        return {
            "current": current,
            "remaining": max(limit - current, 0),
            "resets_in_ms": max(ttl, 0),
        }

    async def reset(self, scope: str, identifier: Any) -> None:
        """Drop the window for (scope, identifier), whichever algorithm created it."""
        key = self.namespace.prefix(self.namespace.rate_limit(scope, identifier))
        redis = await self.connection.connect()
        with translate_errors("DEL"):
            await redis.delete(key)


__all__ = ["RateLimiter"]
