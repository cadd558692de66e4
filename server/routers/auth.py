"""Authentication routes for user registration and login."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from core.container import container
from core.logging import get_logger
from services.user_auth import EMAIL_TAKEN, UserAuthService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


def get_user_auth_service() -> UserAuthService:
    return container.user_auth_service()


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    user_auth: UserAuthService = Depends(get_user_auth_service)
):
    """
    Register a new user and return an access token.
    The first registered account is the admin.
    """
    user, error = await user_auth.register(
        username=request.username,
        email=request.email,
        password=request.password
    )

    if error:
        raise HTTPException(status_code=409 if error == EMAIL_TAKEN else 400, detail=error)

    token = user_auth.create_access_token(user)
    return {
        "success": True,
        "data": {
            "token": token,
            "user": {
                "id": user.id,
                "email": user.email,
                "role": user.role
            }
        }
    }


@router.post("/login")
async def login(
    request: LoginRequest,
    user_auth: UserAuthService = Depends(get_user_auth_service)
):
    """Login with email and password. Returns a bearer token."""
    user, error = await user_auth.login(
        email=request.email,
        password=request.password
    )

    if error:
        raise HTTPException(status_code=401, detail=error)

    return {
        "success": True,
        "data": {
            "token": user_auth.create_access_token(user),
            "role": user.role
        }
    }
