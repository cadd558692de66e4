"""Cache-aside reads and post-commit invalidation.

Reads check the cache first and fall back to the store on a miss, then
populate the cache in the background. Writers call invalidate() only after
their store commit succeeded. There is no locking between the two: a reader
that misses between a commit and its invalidation can repopulate the cache
with pre-commit data, which then lives for at most one TTL.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Set

from core.cache import CacheService
from core.logging import get_logger

logger = get_logger(__name__)

CACHE_KEY_SEPARATOR = ":"


def cache_key(resource: str, scope: str = "all") -> str:
    """Build the namespaced cache key for a resource collection or item."""
    return f"{resource}{CACHE_KEY_SEPARATOR}{scope}"


class CacheAsideCoordinator:
    """Read-through/invalidate wrapper around a CacheService."""

    def __init__(self, cache: CacheService):
        self.cache = cache
        self._pending: Set[asyncio.Task] = set()

    async def read_through(self, key: str, ttl: int,
                           compute: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached payload for key, or compute and cache it.

        The payload is either the cached value or the fresh store result,
        never a mix. compute() errors propagate and nothing is cached.
        """
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return json.loads(cached)
            except ValueError as e:
                logger.warning("Discarding undecodable cache entry", key=key, error=str(e))

        result = await compute()
        self._populate(key, json.dumps(result, default=str), ttl)
        return result

    async def invalidate(self, key: str) -> None:
        """Drop a cache entry. Call only after the store commit succeeded."""
        await self.cache.delete(key)

    def _populate(self, key: str, payload: str, ttl: int) -> None:
        task = asyncio.create_task(self.cache.set(key, payload, ttl))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for background cache writes still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
