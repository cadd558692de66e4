"""Cache service with an optional Redis backend.

The Redis connection is attempted once, at startup. If it fails the service
switches to a null backend for the rest of the process lifetime: every
get/set/delete becomes a no-op and callers never see a cache error. There is
no reconnect loop.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import redis.asyncio as redis

from core.config import Settings
from core.logging import get_logger, log_cache_operation

logger = get_logger(__name__)


class CacheState(str, Enum):
    UNATTEMPTED = "unattempted"
    CONNECTED = "connected"
    UNAVAILABLE = "unavailable"


class CacheBackend(Protocol):
    """Key/value operations shared by the Redis and null backends."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: int) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def close(self) -> None: ...


class NullCacheBackend:
    """Backend used when Redis is unavailable. Every call is a no-op."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return False

    async def close(self) -> None:
        return None


class RedisCacheBackend:
    """Redis backend. Command errors are logged and absorbed."""

    def __init__(self, client: Any):
        self.redis = client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.redis.get(key)
        except Exception as e:
            logger.error("Cache get failed", key=key, error=str(e))
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: int) -> bool:
        try:
            await self.redis.setex(key, ttl, value)
            return True
        except Exception as e:
            logger.error("Cache set failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.redis.delete(key))
        except Exception as e:
            logger.error("Cache delete failed", key=key, error=str(e))
            return False

    async def close(self) -> None:
        try:
            await self.redis.aclose()
        except Exception as e:
            logger.warning("Redis close failed", error=str(e))


def create_redis_client(url: str, timeout: float) -> Any:
    """Build an asyncio Redis client with bounded socket timeouts."""
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        retry_on_timeout=False
    )


class CacheService:
    """Cache backend handle.

    State moves from UNATTEMPTED to either CONNECTED or UNAVAILABLE during
    startup() and never changes again.
    """

    def __init__(self, settings: Settings,
                 client_factory: Optional[Callable[[str, float], Any]] = None):
        self.settings = settings
        self.state = CacheState.UNATTEMPTED
        self.backend: CacheBackend = NullCacheBackend()
        self._client_factory = client_factory or create_redis_client

    async def startup(self) -> CacheState:
        """Connect to Redis once. Never raises."""
        if self.state is not CacheState.UNATTEMPTED:
            return self.state

        if not self.settings.cache_configured:
            self._mark_unavailable("cache not configured")
            return self.state

        timeout = self.settings.cache_connect_timeout
        client = None
        try:
            client = self._client_factory(self.settings.redis_url, timeout)
            await asyncio.wait_for(client.ping(), timeout=timeout)
        except Exception as e:
            if client is not None:
                await RedisCacheBackend(client).close()
            self._mark_unavailable(str(e) or type(e).__name__)
            return self.state

        self.backend = RedisCacheBackend(client)
        self.state = CacheState.CONNECTED
        logger.info("Redis cache connected", connect_timeout=timeout)
        return self.state

    def _mark_unavailable(self, reason: str) -> None:
        self.backend = NullCacheBackend()
        self.state = CacheState.UNAVAILABLE
        logger.warning("Redis cache unavailable, running without cache", reason=reason)

    async def shutdown(self):
        """Close cache connections."""
        if self.state is CacheState.CONNECTED:
            await self.backend.close()
            logger.info("Redis cache connections closed")

    async def get(self, key: str) -> Optional[str]:
        """Get a serialized value, or None on miss or when degraded."""
        value = await self.backend.get(key)
        log_cache_operation(logger, "get", key, hit=value is not None)
        return value

    async def set(self, key: str, value: str, ttl: int) -> bool:
        """Store a serialized value with a TTL in seconds."""
        stored = await self.backend.set(key, value, ttl)
        log_cache_operation(logger, "set", key, ttl=ttl, stored=stored)
        return stored

    async def delete(self, key: str) -> bool:
        """Delete a key. Deleting a missing key is not an error."""
        deleted = await self.backend.delete(key)
        log_cache_operation(logger, "delete", key, deleted=deleted)
        return deleted
