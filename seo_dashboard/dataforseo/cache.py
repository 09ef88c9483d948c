"""
DataForSEO Response Cache

Redis-backed cache for DataForSEO responses with:
- Consistent, hashed cache keys per module and data type
- TTLs tuned to how often each data type changes
- Circuit breaker for resilience
- Graceful degradation (a cache failure never fails a request)
- Hit/miss/error statistics
"""

import asyncio
import hashlib
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError

from seo_dashboard.utils.config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# TTLs and keys
# =============================================================================

class CacheTTL:
    """Cache TTL in seconds by data type."""
    SERP = 4 * 60 * 60  # rankings change frequently
    GMB = 4 * 60 * 60
    ONPAGE = 24 * 60 * 60
    BACKLINKS = 24 * 60 * 60
    KEYWORDS = 24 * 60 * 60  # monthly volume data
    KEYWORD_DIFFICULTY = 3 * 24 * 60 * 60
    REFERENCE = 7 * 24 * 60 * 60


def hash_value(value: Union[str, Dict, Iterable[str]]) -> str:
    """Short sha256 hash used in cache keys. Lists are sorted first."""
    if isinstance(value, dict):
        raw = json.dumps(value, sort_keys=True, default=str)
    elif isinstance(value, str):
        raw = value
    else:
        raw = ",".join(sorted(value))
    return hashlib.sha256(raw.encode()).hexdigest()[:12]


def cache_key(module: str, kind: str, value: Union[str, Dict, Iterable[str]], suffix: Any = None) -> str:
    """
    Build a cache key: dfs:<module>:<kind>:<hash>[:<suffix>]

    >>> cache_key("serp", "organic", "dentist austin", 2840)
    'dfs:serp:organic:<12 hex chars>:2840'
    """
    key = f"dfs:{module}:{kind}:{hash_value(value)}"
    if suffix is not None:
        key = f"{key}:{suffix}"
    return key


# =============================================================================
# Circuit breaker
# =============================================================================

@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 3),
        }


class CircuitBreaker:
    """
    Circuit breaker for the Redis connection.

    Fails fast after `threshold` consecutive failures, then allows
    requests again once `timeout` seconds have passed.
    """

    def __init__(self, threshold: int = 5, timeout: int = 60):
        self.threshold = threshold
        self.timeout = timeout
        self.failures = 0
        self.is_open = False
        self.opened_at = 0.0

    def is_available(self) -> bool:
        if not self.is_open:
            return True

        if time.time() - self.opened_at >= self.timeout:
            self.is_open = False
            self.failures = 0
            logger.info("Circuit breaker closed, allowing requests")
            return True

        return False

    def record_success(self):
        self.failures = 0
        self.is_open = False

    def record_failure(self):
        self.failures += 1
        if self.failures >= self.threshold:
            self.is_open = True
            self.opened_at = time.time()
            logger.warning(
                f"Circuit breaker opened after {self.failures} failures. "
                f"Will retry in {self.timeout} seconds."
            )


# =============================================================================
# Cache
# =============================================================================

class DataForSEOCache:
    """
    Redis cache for DataForSEO responses.

    Disabled (every call is a pass-through) when REDIS_URL is not set
    or DATAFORSEO_CACHE_ENABLED is false.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        default_ttl: int = CacheTTL.ONPAGE,
        redis: Optional[Redis] = None,
    ):
        settings = get_settings()
        self.redis_url = redis_url or settings.REDIS_URL
        self.enabled = settings.DATAFORSEO_CACHE_ENABLED if enabled is None else enabled
        self.default_ttl = default_ttl
        self._redis: Optional[Redis] = redis
        self._pool: Optional[ConnectionPool] = None
        self._circuit_breaker = CircuitBreaker()
        self._stats = CacheStats()
        self._lock = asyncio.Lock()

        if self.enabled and not self.redis_url and redis is None:
            logger.warning("[Cache] REDIS_URL not configured. Caching disabled.")
            self.enabled = False

    def is_enabled(self) -> bool:
        return self.enabled

    async def _get_redis(self) -> Redis:
        if self._redis is not None:
            return self._redis

        async with self._lock:
            if self._redis is None:
                self._pool = ConnectionPool.from_url(
                    self.redis_url,
                    max_connections=20,
                    socket_timeout=5,
                    socket_connect_timeout=5,
                    decode_responses=True,
                )
                self._redis = Redis(connection_pool=self._pool)
                logger.info("Redis cache initialized for DataForSEO responses")
        return self._redis

    @asynccontextmanager
    async def _with_circuit_breaker(self):
        if not self._circuit_breaker.is_available():
            raise RedisConnectionError("Circuit breaker is open")

        try:
            yield
            self._circuit_breaker.record_success()
        except RedisError:
            self._circuit_breaker.record_failure()
            raise

    async def close(self):
        """Close Redis connection pool."""
        if self._redis is not None:
            await self._redis.close()
        if self._pool is not None:
            await self._pool.disconnect()
        self._redis = None
        self._pool = None

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value. Returns None on miss or any cache error."""
        if not self.enabled:
            return None

        try:
            redis = await self._get_redis()
            async with self._with_circuit_breaker():
                data = await redis.get(key)
        except RedisError as e:
            self._stats.errors += 1
            logger.warning(f"[Cache] Get error for key {key}: {e}")
            return None

        if data is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        try:
            return json.loads(data)
        except ValueError as e:
            self._stats.errors += 1
            logger.warning(f"[Cache] Corrupt value for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a value with a TTL in seconds."""
        if not self.enabled:
            return False

        try:
            payload = json.dumps(value, default=str)
            redis = await self._get_redis()
            async with self._with_circuit_breaker():
                await redis.setex(key, ttl or self.default_ttl, payload)
            return True
        except (RedisError, TypeError) as e:
            self._stats.errors += 1
            logger.warning(f"[Cache] Set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self.enabled:
            return False

        try:
            redis = await self._get_redis()
            async with self._with_circuit_breaker():
                await redis.delete(key)
            return True
        except RedisError as e:
            self._stats.errors += 1
            logger.warning(f"[Cache] Delete error for key {key}: {e}")
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern. Returns count deleted."""
        if not self.enabled:
            return 0

        try:
            redis = await self._get_redis()
            async with self._with_circuit_breaker():
                keys = [key async for key in redis.scan_iter(match=pattern, count=100)]
                if not keys:
                    return 0
                deleted = await redis.delete(*keys)
            logger.info(f"[Cache] Deleted {deleted} keys matching {pattern}")
            return deleted
        except RedisError as e:
            self._stats.errors += 1
            logger.warning(f"[Cache] InvalidatePattern error for {pattern}: {e}")
            return 0

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        skip_cache: bool = False,
    ) -> Any:
        """
        Return the cached value for `key`, or fetch, store and return it.

        `skip_cache` bypasses the cache for both the read and the write.
        Fetch errors propagate; only cache errors are swallowed.
        """
        if skip_cache:
            return await fetcher()

        if self.enabled:
            cached = await self.get(key)
            if cached is not None:
                logger.debug(f"[Cache] Hit {key}")
                return cached

        result = await fetcher()

        if result is not None:
            await self.set(key, result, ttl)

        return result

    async def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            redis = await self._get_redis()
            return bool(await redis.ping())
        except RedisError:
            return False

    def stats(self) -> Dict[str, Any]:
        return self._stats.to_dict()

    def reset_stats(self):
        self._stats = CacheStats()


_cache_instance: Optional[DataForSEOCache] = None


def get_cache() -> DataForSEOCache:
    """Get the shared DataForSEO cache."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = DataForSEOCache()
    return _cache_instance


def reset_cache():
    global _cache_instance
    _cache_instance = None
