import hashlib
import json
import logging

import redis.asyncio as redis

from newsroom.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "newsroom:articles"


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    Every public method is safe to call while Redis is unavailable: reads
    report a miss and writes are skipped, so a cache outage only costs
    latency, never correctness.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

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
            logger.warning("Redis ping failed, running without cache: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

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

    # ------------------------------------------------------------------
    # Article keys
    # ------------------------------------------------------------------

    @staticmethod
    def page_key(kind: str, params: dict) -> str:
        """Key for a list/search page; *params* must hold every input that shapes the page."""
        digest = hashlib.sha1(json.dumps(params, sort_keys=True, default=str).encode()).hexdigest()
        return f"{KEY_PREFIX}:{kind}:{digest}"

    @staticmethod
    def detail_key(ref: str) -> str:
        return f"{KEY_PREFIX}:detail:{ref}"

    async def invalidate_articles(self) -> None:
        """
        Drop every cached article page and detail entry.

        Any write can move an article in or out of any filtered page, and
        a slug change invalidates slug-keyed details.
        """
        await self.delete_pattern(f"{KEY_PREFIX}:*")


# Module-level singleton shared across all request handlers.
cache = CacheManager()
