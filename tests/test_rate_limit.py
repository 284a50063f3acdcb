import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ecopoints.services import rate_limit

pytestmark = pytest.mark.asyncio


class FakeRedis:
    def __init__(self):
        self.counts = {}
        self.ttls = {}

    async def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds


class DownRedis:
    async def incr(self, key):
        raise RedisConnectionError("connection refused")


async def test_limit_per_window():
    redis = FakeRedis()
    results = [await rate_limit.hit(redis, "checkin", "acc-1") for _ in range(4)]
    assert results == [True, True, True, False]
    assert list(redis.ttls.values()) == [24 * 3600]


async def test_identities_are_independent():
    redis = FakeRedis()
    for _ in range(3):
        await rate_limit.hit(redis, "checkin", "acc-1")
    assert await rate_limit.hit(redis, "checkin", "acc-2") is True


async def test_fails_open():
    assert await rate_limit.hit(DownRedis(), "exchange", "acc-1") is True
