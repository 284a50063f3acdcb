"""Admission control: fixed-window request counters per action and identity in Redis."""

from datetime import datetime

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ecopoints.core.config import get_settings
from ecopoints.core.logging import get_logger

KEY_PREFIX = "ecopoints:rate"

log = get_logger(__name__)

_redis: aioredis.Redis | None = None

LIMITS = {
    "exchange": ("exchange_rate_limit", "exchange_rate_window"),
    "checkin": ("checkin_rate_limit", "checkin_rate_window"),
    "points": ("points_rate_limit", "points_rate_window"),
}


def get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(get_settings().redis_url, decode_responses=True)
    return _redis


def limit_for(action: str) -> tuple[int, int]:
    settings = get_settings()
    limit_attr, window_attr = LIMITS[action]
    return getattr(settings, limit_attr), getattr(settings, window_attr)


def _key(action: str, identity: str, window: int) -> str:
    bucket = int(datetime.utcnow().timestamp()) // window
    return f"{KEY_PREFIX}:{action}:{identity}:{bucket}"


async def hit(redis, action: str, identity: str) -> bool:
    """Count one request; return False once the window's limit is exceeded. Fails open."""
    limit, window = limit_for(action)
    key = _key(action, identity, window)
    try:
        n = await redis.incr(key)
        if n == 1:
            await redis.expire(key, window)
    except RedisError as e:
        log.warning("rate_limit_unavailable", action=action, error=str(e))
        return True
    return n <= limit
