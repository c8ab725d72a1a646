"""Redis client lifecycle and the distributed purchase lock.

The lock is a lease: ``SET key 1 NX PX ttl``. Redis performs the
check-and-set atomically, so two service instances racing for the same
listing see exactly one success. The TTL bounds how long an abandoned
checkout can hold a listing.

Usage:
    redis = await connect_redis(settings.redis_url)
    lock = RedisPurchaseLock(redis, ttl_seconds=900)
    if await lock.acquire("42"):
        ...
    await close_redis(redis)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from token_bazaar.logging_config import get_logger

logger = get_logger(__name__)


async def connect_redis(url: str) -> aioredis.Redis:
    """Create a client and verify connectivity. Called during app startup."""
    client = aioredis.from_url(url, decode_responses=True)
    await client.ping()
    logger.info("redis.connected", url=url)
    return client


async def close_redis(client: aioredis.Redis) -> None:
    """Close the connection. Called during app shutdown."""
    await client.aclose()
    logger.info("redis.disconnected")


class RedisPurchaseLock:
    """PurchaseLock backed by a Redis key per listing."""

    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int,
        prefix: str = "purchase-lock",
    ) -> None:
        self._redis = client
        self._ttl_ms = ttl_seconds * 1000
        self._prefix = prefix

    def _key(self, listing_id: str) -> str:
        return f"{self._prefix}:{listing_id}"

    async def acquire(self, listing_id: str) -> bool:
        acquired = await self._redis.set(self._key(listing_id), "1", nx=True, px=self._ttl_ms)
        return bool(acquired)

    async def release(self, listing_id: str) -> None:
        await self._redis.delete(self._key(listing_id))
