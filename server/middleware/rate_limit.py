"""Global per-client rate limiting."""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)

# Health checks are never limited
EXEMPT_PATHS = frozenset(["/health"])


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that exceed the request budget with 429."""

    async def dispatch(self, request: Request, call_next):
        limiter = container.rate_limiter()
        if not limiter.enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        allowed, retry_after = limiter.check(client)

        if not allowed:
            logger.warning("Rate limit exceeded", client=client,
                           path=request.url.path, retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": "Too many requests, please try again later"},
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)
