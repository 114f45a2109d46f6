"""
Redis cache utility for analytics dashboards
"""
import redis
import json
import logging
from typing import Optional, Any, Callable, Iterable
from app.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-backed JSON cache; degrades to pass-through when Redis is unavailable"""

    def __init__(self):
        self.redis_client = None
        if not settings.CACHE_ENABLED:
            logger.info("Caching disabled by configuration")
            return

        try:
            self.redis_client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            self.redis_client.ping()
            logger.info("Redis connection established")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed: {str(e)}. Caching disabled.")
            self.redis_client = None

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @staticmethod
    def analytics_key(kind: str, object_id: Any) -> str:
        """
        Key of one analytics view

        Args:
            kind: "overview" (per creator), "quiz" or "group"
            object_id: creator, quiz or group id
        """
        return f"analytics:{kind}:{object_id}"

    def get(self, key: str) -> Optional[Any]:
        """Decoded JSON value, or None on a miss or a Redis failure"""
        if not self.enabled:
            return None

        try:
            raw = self.redis_client.get(key)
        except redis.RedisError as e:
            logger.error(f"Cache read failed for {key}: {str(e)}")
            return None

        logger.debug(f"Cache {'hit' if raw else 'miss'}: {key}")
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        """Store a JSON-serializable value; ttl defaults to ANALYTICS_CACHE_TTL"""
        if not self.enabled:
            return False

        ttl = ttl or settings.ANALYTICS_CACHE_TTL
        try:
            self.redis_client.setex(key, ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.error(f"Cache write failed for {key}: {str(e)}")
            return False
        return True

    def remember(self, key: str, build: Callable[[], Any], ttl: int = None) -> Any:
        """Return the cached value for key, building and storing it on a miss"""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = build()
        self.set(key, value, ttl)
        return value

    def delete(self, *keys: str) -> bool:
        if not self.enabled or not keys:
            return False

        try:
            self.redis_client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Cache delete failed: {str(e)}")
            return False
        logger.debug(f"Cache delete: {', '.join(keys)}")
        return True

    def invalidate_quiz_analytics(self, quiz_id: Any, creator_id: Any, group_ids: Iterable[Any] = ()) -> bool:
        """Drop every analytics view a new or regraded submission can change"""
        keys = [
            self.analytics_key("quiz", quiz_id),
            self.analytics_key("overview", creator_id),
        ]
        keys.extend(self.analytics_key("group", group_id) for group_id in group_ids)
        return self.delete(*keys)


# Global instance
cache_service = CacheService()
