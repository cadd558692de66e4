# tests/fakes.py

from __future__ import annotations

import asyncio
import time


class FakeRedis:
    """
    In-memory stand-in for redis.asyncio.Redis used by CacheService tests.

    - Honors SETEX expiry using a monotonic clock
    - Records every command for assertions
    - `fail_commands` makes get/setex/delete raise, as a dropped connection would
    """

    def __init__(self, *, ping_error: Exception | None = None, ping_delay: float = 0.0) -> None:
        self.store: dict[str, tuple[str, float]] = {}
        self.calls: list[tuple[str, str]] = []
        self.ping_error = ping_error
        self.ping_delay = ping_delay
        self.fail_commands = False
        self.closed = False

    async def ping(self) -> bool:
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        if self.ping_error is not None:
            raise self.ping_error
        return True

    def _check(self) -> None:
        if self.fail_commands:
            raise ConnectionError("connection reset by peer")

    async def get(self, key: str) -> str | None:
        self.calls.append(("get", key))
        self._check()
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self.store[key]
            return None
        return value

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.calls.append(("setex", key))
        self._check()
        self.store[key] = (value, time.monotonic() + ttl)
        return True

    async def delete(self, key: str) -> int:
        self.calls.append(("delete", key))
        self._check()
        return 1 if self.store.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        self.closed = True

    def expire_now(self, key: str) -> None:
        """Simulate the TTL elapsing for one key."""
        if key in self.store:
            value, _ = self.store[key]
            self.store[key] = (value, time.monotonic() - 1)


class CountingDatabase:
    """Wraps a real Database and counts full-list reads."""

    def __init__(self, database) -> None:
        self._database = database
        self.list_calls = 0

    async def get_all_tasks(self):
        self.list_calls += 1
        return await self._database.get_all_tasks()

    def __getattr__(self, name: str):
        return getattr(self._database, name)
