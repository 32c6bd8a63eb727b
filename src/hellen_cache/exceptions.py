# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Exception classes for the Hellen cache layer.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from CacheError, making it easy to catch every
cache-, lock- or backend-related failure with a single except clause.

Which components raise and which degrade:

- Cache and Stats propagate backend failures as BackendConnectionError or
  BackendOperationError.
- RateLimiter never raises on backend failure; it allows the request.
- DistributedLock reports backend failures during acquisition as
  LockAcquisitionError, favouring mutual exclusion over availability.
"""


class CacheError(Exception):
    """Base exception for all cache layer errors.

    Example:
        try:
            profile = await cache.get(keys.user(user_id))
        except CacheError as e:
            logger.error(f"Cache error: {e}")
    """

    pass


class BackendConnectionError(CacheError):
    """Raised when the store cannot be reached.

    Covers refused connections, dropped sockets and timeouts. This is the
    ``backend_unavailable`` case: usually transient, and the caller decides
    whether to retry or fall back to the source of truth.

    Example:
        try:
            await cache.set(key, value)
        except BackendConnectionError:
            logger.warning("Redis unavailable, serving uncached data")
    """

    pass


class BackendOperationError(CacheError):
    """Raised when a store command fails after the connection was established.

    Typical causes are commands against a key holding the wrong type, script
    errors, or out-of-memory replies from the server.
    """

    pass


class SerializationError(CacheError):
    """Raised when a value cannot be encoded by any strategy.

    JSON failures fall back to pickle; this is only raised when pickle fails
    as well (lambdas, open sockets, generators and the like). Decoding never
    raises.
    """

    pass


class ConfigurationError(CacheError):
    """Raised when settings are invalid.

    Common causes include non-positive limits, windows or TTLs, and a maximum
    lock TTL smaller than the default lock TTL.
    """

    pass


class LockError(CacheError):
    """Base class for distributed lock errors.

    Attributes:
        resource: The logical resource name the lock protects.
    """

    def __init__(self, message: str, resource: str | None = None):
        super().__init__(message)
        self.resource = resource


class LockAcquisitionError(LockError):
    """Raised when a lock could not be acquired.

    This happens when another holder kept the lock for the whole retry
    budget, or when the store failed during acquisition (fail-closed).

    Example:
        try:
            token = await lock.acquire("job:transcribe:42", retry_count=3)
        except LockAcquisitionError:
            return  # another worker is already on it
    """

    def __init__(self, resource: str, message: str | None = None):
        super().__init__(message or f"Resource is locked: {resource}", resource)


class LockNotOwnedError(LockError):
    """Raised when releasing or extending a lock with a token that does not hold it.

    The lock may have expired and been taken by another holder, or the token
    may simply be wrong. The lock is never modified in this case.
    """

    def __init__(self, resource: str, message: str | None = None):
        super().__init__(
            message or f"Lock is not owned by this token: {resource}", resource
        )
