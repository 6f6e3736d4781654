"""TTL caches for configuration lookups.

``MemoryTTLCache`` is the in-process default. ``RedisTTLCache`` shares the
cache across workers and degrades to misses when Redis is unavailable.
Both expose the same ``get``/``set``/``delete``/``clear`` surface.
"""

import json
import logging
import time
from threading import Lock
from typing import Any, Dict, Optional, Tuple

import redis
from redis.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from placement.config import Settings

logger = logging.getLogger(__name__)


class MemoryTTLCache:
    """Process-local cache: key -> (value, expiry)."""

    def __init__(self, default_ttl: int = 300):
        self.default_ttl = default_ttl
        self._data: Dict[str, Tuple[Any, float]] = {}
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def connect(self) -> None:
        return None

    def disconnect(self) -> None:
        self.clear()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, expires_at = entry
            if expires_at <= time.monotonic():
                del self._data[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = ttl or self.default_ttl
        with self._lock:
            self._data[key] = (value, time.monotonic() + ttl)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {"enabled": True, "backend": "memory", "keys": len(self._data), "hits": self.hits, "misses": self.misses}


class RedisTTLCache:
    """
    Redis-backed cache:
    - Connection pooling
    - Retry with exponential backoff on connection errors
    - Graceful degradation (misses) on failures
    - JSON serialization, prefixed keys
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.enabled = settings.CACHE_ENABLED
        self.prefix = settings.CACHE_KEY_PREFIX
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._is_connected = False

        logger.info(f"RedisTTLCache initialized. Enabled: {self.enabled}")

    def connect(self) -> None:
        """Establish the pooled Redis connection; disable the cache if unreachable."""
        if not self.enabled:
            logger.info("Cache is disabled. Skipping Redis connection.")
            return

        try:
            self._pool = ConnectionPool(
                host=self.settings.REDIS_HOST,
                port=self.settings.REDIS_PORT,
                db=self.settings.REDIS_DB,
                password=self.settings.REDIS_PASSWORD or None,
                max_connections=self.settings.REDIS_MAX_CONNECTIONS,
                socket_keepalive=self.settings.REDIS_SOCKET_KEEPALIVE,
                socket_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=self.settings.REDIS_RETRY_ON_TIMEOUT,
                health_check_interval=self.settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            self._client.ping()
            self._is_connected = True

            logger.info(
                f"Redis cache connected to {self.settings.REDIS_HOST}:{self.settings.REDIS_PORT}"
            )

        except RedisError as e:
            logger.error(f"Failed to connect to Redis cache: {e}")
            logger.warning("Cache will operate in degraded mode (no caching)")
            self._is_connected = False
            self.enabled = False

    def disconnect(self) -> None:
        """Close the client and the pool."""
        if self._client:
            try:
                self._client.close()
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")

        if self._pool:
            try:
                self._pool.disconnect()
            except RedisError as e:
                logger.error(f"Error disconnecting Redis pool: {e}")

        self._is_connected = False
        logger.info("Redis cache disconnected")

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    def _raw_get(self, key: str) -> Optional[str]:
        return self._client.get(self._key(key))

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on miss, error or disabled cache."""
        if not self.enabled or not self._client:
            return None

        try:
            value = self._raw_get(key)
        except RedisError as e:
            logger.warning(f"Redis error getting key '{key}': {e}. Continuing without cache.")
            return None

        if value is None:
            logger.debug(f"Cache MISS: {key}")
            return None

        try:
            logger.debug(f"Cache HIT: {key}")
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to deserialize cached value for key '{key}': {e}")
            self.delete(key)
            return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    def _raw_set(self, key: str, ttl: int, payload: str) -> bool:
        return bool(self._client.setex(self._key(key), ttl, payload))

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled or not self._client:
            return False

        ttl = ttl or self.settings.CACHE_DEFAULT_TTL
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize value for key '{key}': {e}")
            return False

        try:
            return self._raw_set(key, ttl, payload)
        except RedisError as e:
            logger.warning(f"Redis error setting key '{key}': {e}. Continuing without cache.")
            return False

    def delete(self, key: str) -> bool:
        if not self.enabled or not self._client:
            return False
        try:
            return bool(self._client.delete(self._key(key)))
        except RedisError as e:
            logger.error(f"Redis error deleting key '{key}': {e}")
            return False

    def clear(self) -> None:
        """Delete every key under this cache's prefix."""
        if not self.enabled or not self._client:
            return
        try:
            keys = list(self._client.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self._client.delete(*keys)
        except RedisError as e:
            logger.error(f"Redis error clearing prefix '{self.prefix}': {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "backend": "redis", "connected": self._is_connected}


def build_cache(settings: Settings):
    """Cache selected by ``CACHE_BACKEND``."""
    if settings.CACHE_BACKEND == "redis":
        return RedisTTLCache(settings)
    return MemoryTTLCache(default_ttl=settings.CONFIG_CACHE_TTL)
