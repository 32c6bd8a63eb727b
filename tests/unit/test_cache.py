from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError, ResponseError

from hellen_cache.cache import Cache
from hellen_cache.config import ConnectionSettings
from hellen_cache.connection import RedisConnection
from hellen_cache.exceptions import BackendConnectionError, BackendOperationError
from hellen_cache.metrics import REQUESTS_TOTAL


class TestCacheErrorPaths:
    @pytest.fixture
    def mock_redis(self):
        mock = AsyncMock()
        mock.script_load.return_value = "mock_sha"
        mock.ping.return_value = True
        mock.get.return_value = None
        mock.set.return_value = True
        return mock

    @pytest.fixture
    def cache(self, mock_redis, metrics):
        connection = RedisConnection(
            redis_client=mock_redis,
            settings=ConnectionSettings(redis_url="redis://fake:6379", key_prefix="test"),
        )
        return Cache(connection, metrics=metrics)

    async def test_get_propagates_connection_errors(self, cache, mock_redis):
        mock_redis.get.side_effect = ConnectionError("refused")

        with pytest.raises(BackendConnectionError):
            await cache.get("user:1")

    async def test_set_propagates_operation_errors(self, cache, mock_redis):
        mock_redis.set.side_effect = ResponseError("OOM")

        with pytest.raises(BackendOperationError):
            await cache.set("user:1", {"id": 1})

    async def test_get_or_none_maps_errors_to_none(self, cache, mock_redis):
        mock_redis.get.side_effect = ConnectionError("refused")

        assert await cache.get_or_none("user:1") is None

    async def test_fetch_read_error_computes_fresh(self, cache, mock_redis):
        mock_redis.get.side_effect = ConnectionError("refused")

        assert await cache.fetch("user:1", lambda: "fresh") == "fresh"
        mock_redis.set.assert_awaited_once()

    async def test_fetch_write_error_still_returns_value(self, cache, mock_redis):
        mock_redis.set.side_effect = ConnectionError("refused")

        assert await cache.fetch("user:1", lambda: {"id": 1}) == {"id": 1}

    async def test_fetch_compute_error_propagates(self, cache):
        def boom():
            raise RuntimeError("database down")

        with pytest.raises(RuntimeError, match="database down"):
            await cache.fetch("user:1", boom)

    async def test_set_uses_prefix_and_default_ttl(self, cache, mock_redis):
        await cache.set("user:1", 5)

        mock_redis.set.assert_awaited_once_with(
            "test:user:1", b"r:5", px=Cache.DEFAULT_TTL, nx=False, xx=False
        )

    @pytest.mark.parametrize("ttl", [0, -1])
    async def test_set_rejects_non_positive_ttl(self, cache, mock_redis, ttl):
        with pytest.raises(ValueError):
            await cache.set("user:1", 5, ttl=ttl)
        mock_redis.set.assert_not_awaited()

    async def test_fetch_rejects_zero_ttl_before_computing(self, cache):
        calls = []

        with pytest.raises(ValueError):
            await cache.fetch("user:1", lambda: calls.append(1), ttl=0)
        assert calls == []

    async def test_explicit_ttl_is_passed_through(self, cache, mock_redis):
        await cache.set("user:1", 5, ttl=1_500)

        assert mock_redis.set.await_args.kwargs["px"] == 1_500

    async def test_miss_is_counted(self, cache, metrics):
        await cache.fetch("user:1", lambda: 1)
        assert metrics.sample(REQUESTS_TOTAL, {"result": "miss"}) == 1.0


def test_ttl_presets():
    assert Cache.DEFAULT_TTL == 15 * 60_000
    assert Cache.SHORT_TTL == 5 * 60_000
    assert Cache.LONG_TTL == 60 * 60_000
    assert Cache.DAY_TTL == 24 * 60 * 60_000


def test_non_positive_default_ttl_rejected():
    connection = RedisConnection(redis_client=AsyncMock())
    with pytest.raises(ValueError):
        Cache(connection, default_ttl=0)
