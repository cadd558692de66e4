"""Authentication middleware for route protection."""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)

# Public routes that don't require authentication
PUBLIC_PATHS = frozenset([
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/v1/auth/login",
    "/api/v1/auth/register",
])

# Path prefixes that require a bearer token
PROTECTED_PREFIXES = (
    "/api/v1/",
)


def unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"success": False, "message": message},
        headers={"WWW-Authenticate": "Bearer"}
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Verify the bearer token on protected routes and expose its claims."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if not self._is_protected_path(path):
            return await call_next(request)

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return unauthorized("Not authenticated")

        user_auth = container.user_auth_service()
        payload = user_auth.verify_token(token.strip())

        if not payload:
            return unauthorized("Invalid or expired token")

        # Attach user info to request state for downstream handlers
        request.state.user_id = payload.get("sub")
        request.state.role = payload.get("role", "user")

        return await call_next(request)

    def _is_protected_path(self, path: str) -> bool:
        """Check if path requires a bearer token."""
        if path in PUBLIC_PATHS:
            return False
        return path.startswith(PROTECTED_PREFIXES)
