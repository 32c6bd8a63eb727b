# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Health check result type."""

from dataclasses import dataclass
from typing import Any

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """
    Structured health check result for store monitoring.

    Attributes:
        healthy: Whether the store is operational
        status: "healthy" or "unhealthy"
        namespace: Global key prefix of the checked layer
        error: Error message if unhealthy
        metadata: Memory, key count and latency details when healthy
    """

    healthy: bool
    status: str
    namespace: str
    error: str | None = None
    metadata: dict[str, Any] | None = None
