"""
Redis caching utilities for read-heavy engine views
"""
import json
import logging
import redis
from typing import Optional, Any

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    decode_responses=True,
    socket_timeout=2,
    socket_connect_timeout=2,
)


def comparison_key(tender_id, version="*") -> str:
    """Key for one version of a tender's comparison; the default matches every version"""
    return f"comparison:tender:{tender_id}:{version}"


def tender_key(tender_id) -> str:
    return f"tenders:detail:{tender_id}"


def get_cached(key: str) -> Optional[Any]:
    """
    Get value from cache

    Returns:
        Cached value or None if not found, disabled or unreachable
    """
    if not settings.CACHE_ENABLED:
        return None
    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except redis.RedisError as e:
        logger.warning(f"Cache get error for {key}: {e}")
        return None


def set_cached(key: str, value: Any, ttl: int = None) -> bool:
    """
    Set value in cache with TTL

    Args:
        key: Cache key
        value: Value to cache (must be JSON serializable)
        ttl: Time to live in seconds, defaults to CACHE_TTL
    """
    if not settings.CACHE_ENABLED:
        return False
    try:
        redis_client.setex(key, ttl or settings.CACHE_TTL, json.dumps(value, default=str))
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache set error for {key}: {e}")
        return False


def invalidate_cache(pattern: str) -> int:
    """
    Invalidate all cache keys matching pattern (supports wildcards *)

    Returns:
        Number of keys deleted
    """
    if not settings.CACHE_ENABLED:
        return 0
    try:
        keys = list(redis_client.scan_iter(match=pattern))
        if keys:
            return redis_client.delete(*keys)
        return 0
    except redis.RedisError as e:
        logger.warning(f"Cache invalidation error for {pattern}: {e}")
        return 0


def invalidate_tender_cache(tender_id=None):
    """Invalidate tender detail and comparison views"""
    if tender_id:
        invalidate_cache(tender_key(tender_id))
        invalidate_cache(comparison_key(tender_id))
    else:
        invalidate_cache("tenders:*")


def invalidate_comparison_cache(tender_id):
    invalidate_cache(comparison_key(tender_id))


def redis_health_check() -> bool:
    """Check if Redis is accessible"""
    if not settings.CACHE_ENABLED:
        return False
    try:
        return bool(redis_client.ping())
    except redis.RedisError:
        return False
