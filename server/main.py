"""
FastAPI backend for the taskboard: authentication and a shared task list.

SQLite (WAL) is the durable store; Redis, when reachable at startup, caches
the task list.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.exceptions import NotFoundError, StoreError, StoreTransientError
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.auth import AuthMiddleware
from middleware.rate_limit import RateLimitMiddleware
from middleware.request_logging import RequestLoggingMiddleware
from routers import auth, tasks

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting taskboard service")

    # A store that cannot be opened aborts startup; a missing cache does not
    await container.database().startup()
    await container.cache().startup()
    set_startup_time()

    logger.info("Services started successfully",
                cache_state=container.cache().state.value)
    yield

    await container.cache_aside().drain()
    await container.cache().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Taskboard",
    version="1.0.0",
    description="Task management API with cache-aside task listing",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


def error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return error_response(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(StoreTransientError)
async def store_busy_handler(request: Request, exc: StoreTransientError):
    logger.warning("Store busy", path=request.url.path, operation=exc.operation,
                   attempts=exc.attempts)
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database is busy, please retry",
        headers={"Retry-After": "1"}
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error", path=request.url.path, error=str(exc))
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error"
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Bearer token check for /api/v1 routes
app.add_middleware(AuthMiddleware)

# Outer layers: requests over budget are logged but never reach auth
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)

# Add CORS middleware (must be AFTER exception middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(tasks.router)


@app.get("/health")
async def health_check():
    """Store connectivity and cache state."""
    health = await get_health_status(container.database(), container.cache())
    status_code = 200 if health["checks"]["database"] else 503
    return ORJSONResponse(health, status_code=status_code)


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting taskboard service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers
    )
