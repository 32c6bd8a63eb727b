# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Type definitions and constants."""

from .health import HEALTHY, UNHEALTHY, HealthCheckResult
from .rate_limit import Algorithm, RateLimitResult

__all__ = [
    "HEALTHY",
    "UNHEALTHY",
    # Rate limit types
    "Algorithm",
    # Health
    "HealthCheckResult",
    "RateLimitResult",
]
