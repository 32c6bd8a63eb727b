# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Prometheus metrics for the Hellen cache layer.

Metric names use the ``hellen_cache_`` prefix; counters end with ``_total``.
Labels are categorical only (result, algorithm, decision, operation,
outcome). Never label by key, user or identifier.

Usage:
    >>> from hellen_cache.metrics import get_cache_metrics
    >>> metrics = get_cache_metrics()
    >>> metrics.record_request(hit=True)

Tests pass their own CollectorRegistry so samples do not leak between cases:

    >>> from prometheus_client import CollectorRegistry
    >>> metrics = CacheMetrics(registry=CollectorRegistry())
"""

import logging
import threading
from typing import Any

from prometheus_client import REGISTRY, CollectorRegistry, Counter

logger = logging.getLogger(__name__)

METRIC_PREFIX = "hellen_cache"
"""Prefix for all Prometheus metrics in this library."""

REQUESTS_TOTAL = f"{METRIC_PREFIX}_requests"
"""Cache lookups by result (hit, miss)."""

RATE_LIMIT_DECISIONS_TOTAL = f"{METRIC_PREFIX}_rate_limit_decisions"
"""Rate limit decisions by algorithm and decision (allowed, denied)."""

RATE_LIMIT_FAIL_OPEN_TOTAL = f"{METRIC_PREFIX}_rate_limit_fail_open"
"""Rate limit checks allowed because the store was unavailable."""

LOCK_OPERATIONS_TOTAL = f"{METRIC_PREFIX}_lock_operations"
"""Lock operations by operation (acquire, release, extend) and outcome."""


class CacheMetrics:
    """
    Owns the library's Prometheus counters.

    Counter names are given without the ``_total`` suffix; prometheus_client
    appends it on exposition.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry if registry is not None else REGISTRY

        self.requests = Counter(
            REQUESTS_TOTAL,
            "Cache lookups by result",
            ["result"],
            registry=self._registry,
        )
        self.rate_limit_decisions = Counter(
            RATE_LIMIT_DECISIONS_TOTAL,
            "Rate limit decisions by algorithm and decision",
            ["algorithm", "decision"],
            registry=self._registry,
        )
        self.rate_limit_fail_open = Counter(
            RATE_LIMIT_FAIL_OPEN_TOTAL,
            "Rate limit checks allowed because the store was unavailable",
            ["algorithm"],
            registry=self._registry,
        )
        self.lock_operations = Counter(
            LOCK_OPERATIONS_TOTAL,
            "Distributed lock operations by operation and outcome",
            ["operation", "outcome"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, hit: bool) -> None:
        self.requests.labels(result="hit" if hit else "miss").inc()

    def record_decision(self, algorithm: str, allowed: bool) -> None:
        self.rate_limit_decisions.labels(
            algorithm=algorithm, decision="allowed" if allowed else "denied"
        ).inc()

    def record_fail_open(self, algorithm: str) -> None:
        self.rate_limit_fail_open.labels(algorithm=algorithm).inc()

    def record_lock(self, operation: str, outcome: str) -> None:
        self.lock_operations.labels(operation=operation, outcome=outcome).inc()

    def sample(self, name: str, labels: dict[str, str] | None = None) -> Any:
        """Current value of a counter sample, or None if never incremented."""
        return self._registry.get_sample_value(f"{name}_total", labels or {})


# =============================================================================
# Singleton Pattern
# =============================================================================

_global_metrics: CacheMetrics | None = None
_metrics_lock = threading.Lock()


def get_cache_metrics() -> CacheMetrics:
    """
    Get or create the process-wide metrics bound to the default registry.

    Thread-safe singleton initialization.
    """
    global _global_metrics

    if _global_metrics is None:
        with _metrics_lock:
            if _global_metrics is None:
                _global_metrics = CacheMetrics()
                logger.debug("Registered hellen_cache Prometheus counters")

    return _global_metrics


__all__ = [
    "LOCK_OPERATIONS_TOTAL",
    "METRIC_PREFIX",
    "RATE_LIMIT_DECISIONS_TOTAL",
    "RATE_LIMIT_FAIL_OPEN_TOTAL",
    "REQUESTS_TOTAL",
    "CacheMetrics",
    "get_cache_metrics",
]
