# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Configuration for the Hellen cache layer.

All durations are in milliseconds unless the field name says otherwise,
matching the PX/PEXPIRE/PTTL resolution used against the store.
"""

import os
from dataclasses import dataclass, field

from .exceptions import ConfigurationError

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS

DEFAULT_REDIS_URL = "redis://localhost:6379"
DEFAULT_KEY_PREFIX = "hellen"


@dataclass
class ConnectionSettings:
    """
    Settings for the shared Redis connection handle.

    Environment Variables:
        REDIS_URL: Used when redis_url is not given explicitly.
        HELLEN_CACHE_PREFIX: Used when key_prefix is not given explicitly.
    """

    redis_url: str | None = None
    """Redis connection URL. Falls back to REDIS_URL, then localhost."""

    key_prefix: str | None = None
    """Global key prefix shared by every component."""

    max_connections: int = 10
    """Maximum connections in the pool."""

    socket_timeout: float = 5.0
    """Socket read/write timeout in seconds."""

    socket_connect_timeout: float = 5.0
    """Socket connect timeout in seconds."""

    health_check_interval: int = 30
    """Seconds between idle-connection health checks in the pool."""

    connect_timeout: float = 5.0
    """Upper bound in seconds for the initial PING and script load."""

    def __post_init__(self) -> None:
        """Resolve environment fallbacks and validate."""
        self.redis_url = (
            self.redis_url or os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL
        )
        self.key_prefix = (
            self.key_prefix
            or os.environ.get("HELLEN_CACHE_PREFIX")
            or DEFAULT_KEY_PREFIX
        )
        if self.max_connections < 1:
            raise ConfigurationError("max_connections must be at least 1")
        if self.socket_timeout <= 0 or self.socket_connect_timeout <= 0:
            raise ConfigurationError("socket timeouts must be positive")
        if self.connect_timeout <= 0:
            raise ConfigurationError("connect_timeout must be positive")


@dataclass
class CacheSettings:
    """TTL policy for the generic cache."""

    default_ttl: int = 15 * MINUTE_MS
    """TTL applied by Cache.set and Cache.fetch when none is given."""

    def __post_init__(self) -> None:
        if self.default_ttl <= 0:
            raise ConfigurationError("default_ttl must be positive")


@dataclass
class RateLimitSettings:
    """
    Limits for the rate limiter.

    The login limiter counts attempts over login_window, and once
    login_limit is reached keeps the counter alive for login_lockout,
    which must outlive the counting window.
    """

    default_limit: int = 100
    """Requests per window for RateLimiter.check."""

    default_window: int = MINUTE_MS
    """Window length for RateLimiter.check."""

    login_limit: int = 5
    """Attempts allowed before lockout."""

    login_window: int = 15 * MINUTE_MS
    """Window over which login attempts are counted."""

    login_lockout: int = 30 * MINUTE_MS
    """How long an identifier stays locked out once login_limit is reached."""

    login_fail_open: bool = True
    """Allow login checks when the store is unavailable."""

    api_limit: int = 1000
    """Requests per api_window for RateLimiter.check_api."""

    api_window: int = HOUR_MS
    """Window length for RateLimiter.check_api."""

    def __post_init__(self) -> None:
        for name in (
            "default_limit",
            "default_window",
            "login_limit",
            "login_window",
            "login_lockout",
            "api_limit",
            "api_window",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.login_lockout < self.login_window:
            raise ConfigurationError("login_lockout must not be shorter than login_window")


@dataclass
class LockSettings:
    """Distributed lock timing."""

    default_ttl: int = 30_000
    """Lock TTL when none is requested."""

    max_ttl: int = 5 * MINUTE_MS
    """Hard cap on any lock TTL, bounding how long a crashed holder blocks others."""

    default_retry_count: int = 3
    """Retries used by DistributedLock.with_lock."""

    retry_delay: int = 100
    """Delay between acquisition attempts."""

    def __post_init__(self) -> None:
        if self.default_ttl <= 0 or self.max_ttl <= 0:
            raise ConfigurationError("lock TTLs must be positive")
        if self.max_ttl < self.default_ttl:
            raise ConfigurationError("max_ttl must not be smaller than default_ttl")
        if self.default_retry_count < 0 or self.retry_delay < 0:
            raise ConfigurationError("retry settings must not be negative")


@dataclass
class Settings:
    """Aggregate settings handed to the composition root."""

    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    lock: LockSettings = field(default_factory=LockSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings, reading REDIS_URL and HELLEN_CACHE_PREFIX from the environment."""
        return cls(connection=ConnectionSettings())


__all__ = [
    "DEFAULT_KEY_PREFIX",
    "DEFAULT_REDIS_URL",
    "HOUR_MS",
    "MINUTE_MS",
    "CacheSettings",
    "ConnectionSettings",
    "LockSettings",
    "RateLimitSettings",
    "Settings",
]
