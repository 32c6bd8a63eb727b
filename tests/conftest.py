"""Shared fixtures: an isolated fakeredis server per test and fresh metrics."""

import fakeredis
import fakeredis.aioredis
import pytest
from prometheus_client import CollectorRegistry

from hellen_cache.config import ConnectionSettings
from hellen_cache.connection import RedisConnection
from hellen_cache.metrics import CacheMetrics


@pytest.fixture
def metrics():
    """Metrics bound to a private registry so samples never leak between tests."""
    return CacheMetrics(registry=CollectorRegistry())


@pytest.fixture
async def redis():
    """Create a fresh fakeredis instance with its own server for each test."""
    r = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer())
    yield r
    await r.aclose()


@pytest.fixture
async def connection(redis):
    """Connection handle around the fake client, using the "test" prefix."""
    conn = RedisConnection(
        redis_client=redis,
        settings=ConnectionSettings(redis_url="redis://fake:6379", key_prefix="test"),
    )
    yield conn
    await conn.close()
