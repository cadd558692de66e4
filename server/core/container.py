"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from core.rate_limit import RateLimiter
from services.cache_aside import CacheAsideCoordinator
from services.tasks import TaskService
from services.user_auth import UserAuthService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Durable store (SQLite, WAL)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Cache handle (Redis when reachable at startup, no-op otherwise)
    cache = providers.Singleton(
        CacheService,
        settings=settings
    )

    cache_aside = providers.Singleton(
        CacheAsideCoordinator,
        cache=cache
    )

    # Request budget per client address
    rate_limiter = providers.Singleton(
        RateLimiter,
        settings=settings
    )

    # Services
    task_service = providers.Factory(
        TaskService,
        database=database,
        coordinator=cache_aside,
        settings=settings
    )

    user_auth_service = providers.Factory(
        UserAuthService,
        database=database,
        settings=settings
    )


# Global container instance
container = Container()
