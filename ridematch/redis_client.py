import json

import redis.asyncio as aioredis
from ridematch.config import get_settings

settings = get_settings()

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=100,
        )
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ---------------------------------------------------------------------------
# Leases (cross-worker single flight)
# ---------------------------------------------------------------------------

# Compare-and-act scripts: the holder check and the write run atomically.
RELEASE_LEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

RENEW_LEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('pexpire', KEYS[1], ARGV[2])
end
return 0
"""


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


async def acquire_lease(redis: aioredis.Redis, key: str, token: str, ttl_seconds: float) -> bool:
    """Take `key` for `ttl_seconds` unless somebody else holds it."""
    acquired = await redis.set(key, token, nx=True, px=_ttl_ms(ttl_seconds))
    return bool(acquired)


async def renew_lease(redis: aioredis.Redis, key: str, token: str, ttl_seconds: float) -> bool:
    """Push the expiry out by `ttl_seconds`. False when the lease is no longer ours."""
    renewed = await redis.eval(RENEW_LEASE_SCRIPT, 1, key, token, _ttl_ms(ttl_seconds))
    return bool(renewed)


async def release_lease(redis: aioredis.Redis, key: str, token: str) -> None:
    """Drop the lease only if it is still ours (it may have expired and been re-taken)."""
    await redis.eval(RELEASE_LEASE_SCRIPT, 1, key, token)


# ---------------------------------------------------------------------------
# Pub/sub + cache
# ---------------------------------------------------------------------------

async def publish_json(redis: aioredis.Redis, channel: str, message: dict) -> int:
    return await redis.publish(channel, json.dumps(message, default=str))


async def cache_set(redis: aioredis.Redis, key: str, value: str, ttl: int) -> None:
    await redis.setex(key, ttl, value)


async def cache_get(redis: aioredis.Redis, key: str) -> str | None:
    return await redis.get(key)
