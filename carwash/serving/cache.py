"""
Analytics Response Cache

Dashboard reports are recomputed from the daily aggregates on every miss,
so they are kept in redis under a namespace and dropped whenever a visit
is recorded or old aggregates are purged.

Redis is optional. Until init_redis() succeeds, or while redis is failing,
every lookup misses and every store is skipped.
"""

import json
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from carwash.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

_client: Optional[Redis] = None


async def init_redis(url: Optional[str] = None) -> Redis:
    """Connect to redis and verify the connection with a PING."""
    global _client

    if _client is not None:
        return _client

    redis_settings = settings.redis
    pool = ConnectionPool.from_url(
        url or redis_settings.get_url(),
        max_connections=redis_settings.max_connections,
        socket_timeout=redis_settings.socket_timeout,
        decode_responses=redis_settings.decode_responses,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except Exception as e:
        logger.error("Redis unreachable, analytics cache disabled", error=str(e))
        await pool.disconnect()
        raise

    _client = client
    logger.info("Analytics cache connected", namespace_ttl=redis_settings.analytics_ttl)
    return _client


async def close_redis() -> None:
    global _client

    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()
    await client.connection_pool.disconnect()
    logger.info("Analytics cache disconnected")


def get_redis() -> Redis:
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _client


def redis_available() -> bool:
    return _client is not None


class CacheManager:
    """
    JSON values under "<namespace>:<key>" with a default TTL.

    Redis errors never reach the caller: a failed lookup is a miss, a failed
    store or invalidation is logged and skipped. Entries left behind by a
    failed invalidation expire with their TTL.

    Example:
        cache = CacheManager("analytics")
        trend = await cache.get_or_set("trend:weekly:2026-10-19", build_trend)
    """

    def __init__(self, namespace: str, default_ttl: int = 300):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        if _client is None:
            return None
        try:
            raw = await _client.get(self._key(key))
            if raw is None:
                return None
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Dropping unreadable cache entry", key=self._key(key))
                await _client.delete(self._key(key))
                return None
        except RedisError as e:
            logger.warning("Cache read failed", key=self._key(key), error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if _client is None:
            return False
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Value not cacheable", key=self._key(key), error=str(e))
            return False
        try:
            await _client.set(self._key(key), payload, ex=ttl or self.default_ttl)
        except RedisError as e:
            logger.warning("Cache write failed", key=self._key(key), error=str(e))
            return False
        return True

    async def invalidate_all(self) -> int:
        """Remove every key of this namespace; returns how many were removed."""
        if _client is None:
            return 0
        try:
            keys = [k async for k in _client.scan_iter(match=f"{self.namespace}:*")]
            removed = await _client.delete(*keys) if keys else 0
        except RedisError as e:
            logger.warning("Cache invalidation failed", namespace=self.namespace, error=str(e))
            return 0
        if removed:
            logger.debug("Cache namespace invalidated", namespace=self.namespace, keys=removed)
        return removed

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """Return the cached value, or await factory() and cache its result."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        await self.set(key, value, ttl)
        return value


analytics_cache = CacheManager("analytics", default_ttl=settings.redis.analytics_ttl)
