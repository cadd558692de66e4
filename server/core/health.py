"""Health check utilities.

Provides uptime tracking and the payload of the /health endpoint.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from core.database import Database
    from core.cache import CacheService

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def get_health_status(database: "Database", cache: "CacheService") -> Dict[str, Any]:
    """Get health status for /health endpoint.

    The cache never makes the service unhealthy; without it the service is
    only slower.
    """
    db_healthy = await database.check_health()

    return {
        "status": "OK" if db_healthy else "unavailable",
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "database": db_healthy,
            "journal_mode": database.journal_mode,
            "cache": cache.state.value,
        },
    }
