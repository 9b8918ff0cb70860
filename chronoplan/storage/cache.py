import json
import hashlib
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import redis

from chronoplan.config.settings import get_settings

logger = logging.getLogger(__name__)


class ScheduleCache:
    """Read-through cache for scheduling results. Redis failures count as misses."""

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        settings = get_settings()
        self.redis_client = redis.from_url(redis_url or settings.redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds or settings.cache_ttl_seconds

    def get(self, key: str) -> Optional[Dict]:
        """Retrieve cached result by payload hash."""
        try:
            cached = self.redis_client.get(f"schedule:{key}")
        except redis.RedisError as e:
            logger.warning(f"Cache read failed: {e}")
            return None
        if cached:
            return json.loads(cached)
        return None

    def set(self, key: str, value: Dict, ttl_seconds: Optional[int] = None) -> None:
        """Cache result with TTL."""
        try:
            self.redis_client.setex(
                f"schedule:{key}",
                ttl_seconds or self.ttl_seconds,
                json.dumps(value, default=str),
            )
        except redis.RedisError as e:
            logger.warning(f"Cache write failed: {e}")

    def delete(self, key: str) -> None:
        """Invalidate cache entry."""
        try:
            self.redis_client.delete(f"schedule:{key}")
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed: {e}")

    @staticmethod
    def hash_payload(payload: Any) -> str:
        """Stable hash of a JSON-compatible request payload."""
        data = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(data.encode()).hexdigest()[:16]

    def health_check(self) -> bool:
        """Check Redis connection."""
        try:
            self.redis_client.ping()
            return True
        except redis.RedisError:
            return False


@lru_cache(maxsize=1)
def get_cache() -> ScheduleCache:
    return ScheduleCache()
