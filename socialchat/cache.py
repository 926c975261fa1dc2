"""
Redis-backed helpers: presence mirroring and rate limiting.
Every helper degrades to a no-op when Redis is not connected.
"""
import os
from typing import Optional
from . import core
import logging

logger = logging.getLogger(__name__)

MESSAGE_RATE_LIMIT = int(os.getenv('MESSAGE_RATE_LIMIT', '100'))
MESSAGE_RATE_WINDOW = 3600

class CacheManager:
    """Thin wrapper around the shared Redis client"""

    def _make_key(self, key: str, prefix: str = "") -> str:
        """Generate cache key with prefix"""
        if prefix:
            return f"{prefix}:{key}"
        return key

    async def set(self, key: str, value, ttl: Optional[int] = None, prefix: str = "") -> bool:
        if not core.REDIS:
            return False
        cache_key = self._make_key(key, prefix)
        try:
            await core.REDIS.set(cache_key, value, ex=ttl)
            return True
        except Exception as e:
            logger.error(f"Cache set failed for key {cache_key}: {str(e)}")
            return False

    async def delete(self, key: str, prefix: str = "") -> bool:
        if not core.REDIS:
            return False
        cache_key = self._make_key(key, prefix)
        try:
            await core.REDIS.delete(cache_key)
            return True
        except Exception as e:
            logger.error(f"Cache delete failed for key {cache_key}: {str(e)}")
            return False

    async def increment(self, key: str, ttl: int, prefix: str = "") -> Optional[int]:
        """Increment a counter, starting its TTL on first use"""
        if not core.REDIS:
            return None
        cache_key = self._make_key(key, prefix)
        try:
            value = await core.REDIS.incr(cache_key)
            if value == 1:
                await core.REDIS.expire(cache_key, ttl)
            return value
        except Exception as e:
            logger.error(f"Cache increment failed for key {cache_key}: {str(e)}")
            return None

cache = CacheManager()

async def mark_online(user_id: int):
    # no expiry: the key lives exactly as long as the connection
    await cache.set(str(user_id), 'online', prefix='presence')

async def mark_offline(user_id: int):
    await cache.delete(str(user_id), 'presence')

async def check_rate_limit(user_id: int, action: str, limit: Optional[int] = None, window: int = MESSAGE_RATE_WINDOW) -> bool:
    """Check if user is within rate limit"""
    limit = limit or MESSAGE_RATE_LIMIT
    current = await cache.increment(f"{user_id}:{action}", window, "rate_limit")
    if current is None:
        return True
    return current <= limit
