# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Rate limit algorithm and result types.
"""

from dataclasses import dataclass
from enum import Enum


class Algorithm(str, Enum):
    """
    Rate limiting algorithms supported by RateLimiter.

    Algorithms:
        * **FIXED**: One counter per window, reset when its expiry fires.
          Cheap, but allows up to 2x the limit across a window boundary.
        * **SLIDING**: One sorted-set member per request inside the trailing
          window. Accurate, at one member of memory per request.
    """

    FIXED = "fixed"
    SLIDING = "sliding"


@dataclass
class RateLimitResult:
    """
    Outcome of a single rate limit check.

    Attributes:
        allowed: Whether the request may proceed
        remaining: Requests left in the current window (0 when denied)
        retry_after_ms: Milliseconds until a retry can succeed (0 when allowed)
        limit: The limit the request was checked against
        algorithm: Algorithm that produced the decision
    """

    allowed: bool
    remaining: int
    retry_after_ms: int = 0
    limit: int = 0
    algorithm: Algorithm = Algorithm.FIXED

    @property
    def retry_after_seconds(self) -> float:
        """Retry delay in seconds, convenient for Retry-After headers."""
        return self.retry_after_ms / 1000.0
