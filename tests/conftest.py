# tests/conftest.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

# main.py builds Settings at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-0123456789-abcdefghijklmnop")
os.environ.setdefault("LOG_FORMAT", "console")

from core.cache import CacheService
from core.config import Settings
from core.database import Database
from services.cache_aside import CacheAsideCoordinator

from .fakes import FakeRedis


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test SQLite file and a fake Redis URL."""
    return Settings(
        jwt_secret_key="test-secret-key-0123456789-abcdefghijklmnop",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'taskboard.db'}",
        redis_url="redis://cache.test:6379/0",
        redis_enabled=True,
        cache_connect_timeout=0.5,
        sqlite_retry_delay=0.0,
        tasks_cache_ttl=60,
    )


@pytest.fixture()
async def database(settings: Settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
async def cache(settings: Settings, fake_redis: FakeRedis):
    """CacheService connected to the fake Redis."""
    service = CacheService(settings, client_factory=lambda url, timeout: fake_redis)
    await service.startup()
    yield service
    await service.shutdown()


@pytest.fixture()
async def degraded_cache(settings: Settings):
    """CacheService whose startup connection was refused."""
    broken = FakeRedis(ping_error=ConnectionRefusedError("connection refused"))
    service = CacheService(settings, client_factory=lambda url, timeout: broken)
    await service.startup()
    return service


@pytest.fixture()
def coordinator(cache: CacheService) -> CacheAsideCoordinator:
    return CacheAsideCoordinator(cache)
