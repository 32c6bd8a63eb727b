from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError, TimeoutError

from hellen_cache.config import ConnectionSettings, RateLimitSettings
from hellen_cache.connection import RedisConnection
from hellen_cache.metrics import RATE_LIMIT_DECISIONS_TOTAL, RATE_LIMIT_FAIL_OPEN_TOTAL
from hellen_cache.rate_limiter import RateLimiter
from hellen_cache.types import Algorithm, RateLimitResult


class TestRateLimiterFailOpen:
    @pytest.fixture
    def mock_redis(self):
        mock = AsyncMock()
        mock.script_load.return_value = "mock_sha"
        mock.ping.return_value = True
        return mock

    @pytest.fixture
    def connection(self, mock_redis):
        return RedisConnection(
            redis_client=mock_redis,
            settings=ConnectionSettings(redis_url="redis://fake:6379", key_prefix="test"),
        )

    @pytest.fixture
    def limiter(self, connection, metrics):
        return RateLimiter(connection, metrics=metrics)

    async def test_fixed_window_fails_open(self, limiter, mock_redis, metrics):
        mock_redis.evalsha.side_effect = ConnectionError("refused")

        result = await limiter.check("upload", 1, limit=10, window=60_000)

        assert result == RateLimitResult(
            allowed=True, remaining=10, limit=10, algorithm=Algorithm.FIXED
        )
        assert metrics.sample(RATE_LIMIT_FAIL_OPEN_TOTAL, {"algorithm": "fixed"}) == 1.0

    async def test_sliding_window_fails_open(self, limiter, mock_redis, metrics):
        mock_redis.pipeline = Mock(side_effect=TimeoutError("slow"))

        result = await limiter.check("upload", 1, limit=10, algorithm=Algorithm.SLIDING)

        assert result.allowed is True
        assert result.remaining == 10
        assert metrics.sample(RATE_LIMIT_FAIL_OPEN_TOTAL, {"algorithm": "sliding"}) == 1.0

    async def test_unreachable_store_fails_open(self, limiter, mock_redis):
        mock_redis.ping.side_effect = ConnectionError("refused")

        result = await limiter.check("upload", 1)

        assert result.allowed is True
        assert result.remaining == 100

    async def test_login_fails_open_by_default(self, limiter, mock_redis):
        mock_redis.evalsha.side_effect = ConnectionError("refused")

        result = await limiter.check_login("a@b.c")

        assert result.allowed is True
        assert result.remaining == 5

    async def test_login_can_fail_closed(self, connection, mock_redis, metrics):
        limiter = RateLimiter(
            connection, settings=RateLimitSettings(login_fail_open=False), metrics=metrics
        )
        mock_redis.evalsha.side_effect = ConnectionError("refused")

        result = await limiter.check_login("a@b.c")

        assert result.allowed is False
        assert result.retry_after_ms == 15 * 60_000
        assert metrics.sample(
            RATE_LIMIT_DECISIONS_TOTAL, {"algorithm": "login", "decision": "denied"}
        ) == 1.0

    async def test_fixed_window_uses_script_result(self, limiter, mock_redis):
        mock_redis.evalsha.return_value = [4, 12_000]

        result = await limiter.check("upload", 1, limit=3, window=60_000)

        assert result.allowed is False
        assert result.retry_after_ms == 12_000
        mock_redis.evalsha.assert_awaited_once_with(
            "mock_sha", 1, "test:ratelimit:upload:1", 60_000
        )

    async def test_non_positive_ttl_falls_back_to_window(self, limiter, mock_redis):
        mock_redis.evalsha.return_value = [4, 0]

        result = await limiter.check("upload", 1, limit=3, window=60_000)

        assert result.retry_after_ms == 60_000

    @pytest.mark.parametrize("limit, window", [(0, 1000), (10, 0), (-1, 1000)])
    async def test_invalid_arguments(self, limiter, limit, window):
        with pytest.raises(ValueError):
            await limiter.check("upload", 1, limit=limit, window=window)


def test_retry_after_seconds():
    assert RateLimitResult(allowed=False, remaining=0, retry_after_ms=1500).retry_after_seconds == 1.5
