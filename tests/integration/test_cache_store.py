"""
Cache behaviour against fakeredis.

Covers the get-or-compute path, conditional writes, TTLs, pattern deletion
and the hash/list/set/sorted-set helpers.
"""

import asyncio

import pytest

from hellen_cache.cache import Cache
from hellen_cache.metrics import REQUESTS_TOTAL


@pytest.fixture
def cache(connection, metrics):
    return Cache(connection, metrics=metrics)


class TestFetch:
    async def test_miss_computes_and_stores(self, cache, redis):
        calls = []

        def compute():
            calls.append(1)
            return {"id": 1, "name": "Ana"}

        assert await cache.fetch("user:1", compute) == {"id": 1, "name": "Ana"}
        assert await cache.fetch("user:1", compute) == {"id": 1, "name": "Ana"}
        assert len(calls) == 1
        assert await redis.get("test:user:1") == b'j:{"id":1,"name":"Ana"}'

    async def test_async_compute_fn(self, cache):
        async def compute():
            await asyncio.sleep(0)
            return [1, 2, 3]

        assert await cache.fetch("lessons:user:1", compute) == [1, 2, 3]

    async def test_fetch_applies_ttl(self, cache):
        await cache.fetch("user:1", lambda: 1, ttl=5_000)

        remaining = await cache.ttl("user:1")
        assert 0 < remaining <= 5_000

    async def test_hit_and_miss_metrics(self, cache, metrics):
        await cache.fetch("user:1", lambda: 1)
        await cache.fetch("user:1", lambda: 1)

        assert metrics.sample(REQUESTS_TOTAL, {"result": "miss"}) == 1.0
        assert metrics.sample(REQUESTS_TOTAL, {"result": "hit"}) == 1.0

    async def test_concurrent_misses_each_compute(self, cache):
        """fetch() is not single-flight: every concurrent miss runs compute_fn."""
        calls = 0
        gate = asyncio.Event()

        async def compute():
            nonlocal calls
            calls += 1
            await gate.wait()
            return calls

        tasks = [asyncio.create_task(cache.fetch("report", compute)) for _ in range(3)]

        async def all_computing():
            while calls < 3:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(all_computing(), timeout=2)
        gate.set()
        await asyncio.gather(*tasks)

        assert calls == 3

    async def test_stale_entry_refreshed_in_background(self, cache):
        await cache.set("stats", "old", ttl=1_000)

        value = await cache.fetch("stats", lambda: "new", ttl=60_000, stale_ttl=30_000)
        assert value == "old"

        await asyncio.gather(*cache._refresh_tasks)
        assert await cache.get("stats") == "new"
        assert await cache.ttl("stats") > 30_000

    async def test_fresh_entry_not_refreshed(self, cache):
        await cache.set("stats", "old", ttl=60_000)

        await cache.fetch("stats", lambda: "new", stale_ttl=1_000)

        assert not cache._refresh_tasks
        assert await cache.get("stats") == "old"


class TestBasicOperations:
    async def test_set_get_delete(self, cache):
        assert await cache.set("user:1", {"id": 1}) is True
        assert await cache.get("user:1") == {"id": 1}
        assert await cache.exists("user:1") is True
        assert await cache.delete("user:1") == 1
        assert await cache.get("user:1") is None
        assert await cache.exists("user:1") is False

    async def test_set_nx(self, cache):
        assert await cache.set("k", 1, nx=True) is True
        assert await cache.set("k", 2, nx=True) is False
        assert await cache.get("k") == 1

    async def test_set_xx(self, cache):
        assert await cache.set("k", 1, xx=True) is False
        await cache.set("k", 1)
        assert await cache.set("k", 2, xx=True) is True
        assert await cache.get("k") == 2

    async def test_ttl_codes(self, cache, redis):
        assert await cache.ttl("missing") == -2
        await redis.set("test:forever", b"r:1")
        assert await cache.ttl("forever") == -1

    async def test_expire(self, cache):
        await cache.set("k", 1)
        assert await cache.expire("k", 2_000) is True
        assert 0 < await cache.ttl("k") <= 2_000

    async def test_incr_and_incrby(self, cache):
        assert await cache.incr("counter") == 1
        assert await cache.incrby("counter", 5) == 6
        assert await cache.get("counter") == 6

    async def test_ping(self, cache):
        assert await cache.ping() is True

    async def test_delete_pattern(self, cache, redis):
        for i in range(3):
            await cache.set(f"user:{i}:stats", i)
        await cache.set("lesson:1", 1)
        await redis.set("other:user:9:stats", b"r:9")

        assert await cache.delete_pattern("user:*:stats") == 3
        assert await cache.get("lesson:1") == 1
        assert await redis.get("other:user:9:stats") == b"r:9"

    async def test_flush_all_only_touches_prefix(self, cache, redis):
        await cache.set("user:1", 1)
        await cache.set("lesson:1", 1)
        await redis.set("other:key", b"x")

        assert await cache.flush_all() == 2
        assert await redis.get("other:key") == b"x"

    async def test_delete_many(self, cache):
        await cache.set("a", 1)
        await cache.set("b", 2)
        assert await cache.delete_many(["a", "b", "c"]) == 2
        assert await cache.delete_many([]) == 0


class TestDataStructures:
    async def test_hash(self, cache):
        await cache.hset("user:1:profile", "name", "Ana")
        await cache.hmset("user:1:profile", {"age": 30, "tags": ["a", "b"]})

        assert await cache.hget("user:1:profile", "name") == "Ana"
        assert await cache.hget("user:1:profile", "missing") is None
        assert await cache.hgetall("user:1:profile") == {
            "name": "Ana",
            "age": 30,
            "tags": ["a", "b"],
        }
        assert await cache.hdel("user:1:profile", "age") == 1

    async def test_list(self, cache):
        await cache.lpush("recent", 1)
        await cache.lpush("recent", {"id": 2}, 3)

        assert await cache.lrange("recent", 0, -1) == [3, {"id": 2}, 1]
        await cache.ltrim("recent", 0, 1)
        assert await cache.lrange("recent", 0, -1) == [3, {"id": 2}]

    async def test_set(self, cache):
        assert await cache.sadd("subjects", "math", "science") == 2
        assert sorted(await cache.smembers("subjects")) == ["math", "science"]
        assert await cache.sismember("subjects", "math") is True
        assert await cache.sismember("subjects", "art") is False

    async def test_sorted_set(self, cache):
        await cache.zadd("scores", 10, "ana")
        await cache.zadd("scores", 30, "bia")
        await cache.zadd("scores", 20, "caio")

        assert await cache.zrangebyscore("scores", 15, "+inf") == ["caio", "bia"]
        assert await cache.zrevrange("scores", 0, 1, withscores=True) == [
            ("bia", 30.0),
            ("caio", 20.0),
        ]
