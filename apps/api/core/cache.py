"""
Redis Caching Layer

Shared Redis client for short-lived caches (feature flag resolution).
Degrades gracefully: every helper is a no-op when Redis is unavailable.
"""
import json
import logging
from typing import Optional, Any
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
        logger.info("Redis connection established")
        _redis_client = client
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Caching disabled.")
        return None


def cache_key(prefix: str, *parts: Any) -> str:
    """Build a key like "flag:program_generation.structured_output:<owner>"."""
    return ":".join([prefix] + [str(p) for p in parts if p is not None])


def get_cache(client: Optional[redis.Redis], key: str) -> Optional[Any]:
    """Get a JSON value. Returns None if missing or Redis fails."""
    if client is None:
        return None
    try:
        value = client.get(key)
        return json.loads(value) if value else None
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache get error for key {key}: {e}")
        return None


def set_cache(client: Optional[redis.Redis], key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Store a JSON value with a TTL. Returns True if stored."""
    if client is None:
        return False
    try:
        client.setex(key, ttl or settings.FEATURE_FLAG_CACHE_TTL, json.dumps(value, default=str))
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache set error for key {key}: {e}")
        return False


def delete_cache(client: Optional[redis.Redis], key: str) -> bool:
    if client is None:
        return False
    try:
        client.delete(key)
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache delete error for key {key}: {e}")
        return False
