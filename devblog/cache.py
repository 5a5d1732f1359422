import json
import logging

import redis.asyncio as redis

from devblog.config import settings

logger = logging.getLogger(__name__)

ARTICLE_LIST_PREFIX = "articles:list"
ARTICLE_DETAIL_PREFIX = "articles:detail"


def article_list_key(**dimensions) -> str:
    """
    Build the list cache key from every dimension that shapes the result.

    Keys are sorted so that the same filters always yield the same key no
    matter the keyword order at the call site.
    """
    parts = [f"{name}={dimensions[name]}" for name in sorted(dimensions)]
    return f"{ARTICLE_LIST_PREFIX}:" + ":".join(parts)


def article_detail_key(article_id: int) -> str:
    return f"{ARTICLE_DETAIL_PREFIX}:{article_id}"


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    Every public method is safe to call when Redis is unavailable: reads
    return None and writes are skipped, so the API keeps serving straight
    from the database.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis unavailable, article cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> dict | list | None:
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None
        return json.loads(data) if data is not None else None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        """Store *value* as JSON; failures are logged, never raised."""
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    async def invalidate_article(self, article_id: int | None = None) -> None:
        """
        Drop every list page, plus the detail entry of *article_id* if given.

        Called after article writes and after likes/comments change an
        article's counters.
        """
        await self.delete_pattern(f"{ARTICLE_LIST_PREFIX}:*")
        if article_id is not None:
            await self.delete_pattern(article_detail_key(article_id))


# Module-level singleton shared across all request handlers.
cache = CacheManager()
