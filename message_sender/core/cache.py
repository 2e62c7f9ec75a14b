"""
Redis cache layer — async Redis client used as a best-effort key/value sink.

Provides:
    • Lazy async connection from REDIS_URL
    • TTL-aware set (ttl=0 → no expiry)
    • Connectivity probe for health checks

Usage:
    from message_sender.core.cache import RedisCache

    cache = RedisCache()
    await cache.set("insider:msg:sent:abc", "2025-10-19T07:41:45+00:00", ttl=0)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from message_sender.core.config import settings
from message_sender.core.errors import CacheError

logger = logging.getLogger(__name__)


class RedisCache:
    """Thin async wrapper around a redis client."""

    def __init__(self, url: Optional[str] = None, client: Any = None):
        self._url = url or settings.REDIS_URL
        self._client = client

    def _get_redis(self):
        """Get or create the async Redis client."""
        if self._client is None:
            self._client = aioredis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis client created: %s", self._url.split("@")[-1])
        return self._client

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        """Store a value. A ttl of 0 keeps the key forever."""
        client = self._get_redis()
        try:
            if ttl > 0:
                await client.set(key, value, ex=ttl)
            else:
                await client.set(key, value)
        except (RedisError, OSError) as e:
            raise CacheError(key, str(e)) from e

    async def ping(self) -> bool:
        client = self._get_redis()
        try:
            return bool(await client.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")
