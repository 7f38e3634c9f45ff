"""
Redis cache for public storefront profiles.
Serves the review page's tenant lookup with graceful degradation: when Redis
is down or disabled every call falls through to the database.
"""

import logging
import json
from typing import Any, Optional, Callable

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)

PROFILE_NAMESPACE = 'profile'


class CacheService:
    """
    Redis-based caching service.

    Keys pattern: {prefix}:{namespace}:{key}
    """

    def __init__(self, app: Optional[Flask] = None):
        """Initialize cache service."""
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""
        self._profile_ttl: int = 300

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'storefront')
        self._profile_ttl = app.config.get('CACHE_PROFILE_TTL', 300)
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                socket_keepalive=True,
                max_connections=50,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] ✓ Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] ⚠ Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    def is_available(self) -> bool:
        """Check if cache is available and healthy."""
        if not self._enabled or not self.client:
            return False
        try:
            self.client.ping()
            return True
        except (ConnectionError, RedisError):
            return False

    def _build_key(self, namespace: str, key: str) -> str:
        return f"{self._prefix}:{namespace}:{key}"

    def get(self, namespace: str, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.is_available():
            return None
        try:
            value = self.client.get(self._build_key(namespace, key))
            if value is None:
                return None
            return json.loads(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] ✗ Get error: {e}")
            return None

    def set(self, namespace: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with TTL."""
        if not self.is_available():
            return False
        try:
            serialized = json.dumps(value, default=str)
            if ttl is None:
                ttl = current_app.config.get('CACHE_DEFAULT_TTL', 60) if has_app_context() else 60
            self.client.setex(self._build_key(namespace, key), ttl, serialized)
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] ✗ Set error: {e}")
            return False

    def delete(self, namespace: str, key: str) -> bool:
        """Delete specific key from cache."""
        if not self.is_available():
            return False
        try:
            self.client.delete(self._build_key(namespace, key))
            logger.info(f"[CACHE] INVALIDATE: {self._build_key(namespace, key)}")
            return True
        except RedisError as e:
            logger.warning(f"[CACHE] ✗ Delete error: {e}")
            return False

    def memoize(self, namespace: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cache-aside: get from cache, or load and cache. None results are not cached."""
        cached = self.get(namespace, key)
        if cached is not None:
            return cached
        value = loader_fn()
        if value is not None:
            self.set(namespace, key, value, ttl)
        return value

    def memoize_profile(self, business_number: str, loader_fn: Callable[[], Optional[dict]]) -> Optional[dict]:
        """Public profile for a business number, cached for CACHE_PROFILE_TTL seconds."""
        return self.memoize(PROFILE_NAMESPACE, business_number, loader_fn, ttl=self._profile_ttl)


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    """Get cache service instance."""
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service


def invalidate_public_profile(business_number: Optional[str]) -> bool:
    """Drop the cached public profile after a tenant write."""
    if not business_number or _cache_service is None:
        return False
    return _cache_service.delete(PROFILE_NAMESPACE, business_number)
