"""User authentication service with JWT handling."""

from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any

from jose import jwt, JWTError
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.config import Settings
from core.database import Database
from core.exceptions import StoreConflictError
from core.logging import get_logger
from models.auth import User, UserRole

logger = get_logger(__name__)

EMAIL_TAKEN = "Email already exists"
INVALID_CREDENTIALS = "Invalid credentials"


class UserAuthService:
    """Handles user registration, login, and JWT token management."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings
        self._algorithm = "HS256"

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address."""
        async def query(session: AsyncSession) -> Optional[User]:
            result = await session.execute(
                select(User).where(User.email == email.lower().strip())
            )
            return result.scalars().first()

        return await self.database.run_read("get_user_by_email", query)

    async def register(
        self, username: str, email: str, password: str
    ) -> tuple[Optional[User], Optional[str]]:
        """
        Register a new user.
        Returns (user, None) on success, (None, error_message) on failure.
        The first account becomes the admin.
        """
        if await self.get_user_by_email(email):
            return None, EMAIL_TAKEN

        if len(password) < 8:
            return None, "Password must be at least 8 characters"

        user = User.create(username=username, email=email, password=password)

        async def insert(session: AsyncSession) -> User:
            user.role = UserRole.USER
            session.add(user)
            await session.flush()
            # The insert holds the write lock, so the count is stable until commit
            result = await session.execute(select(func.count()).select_from(User))
            if result.scalar_one() == 1:
                user.role = UserRole.ADMIN
                await session.flush()
            return user

        try:
            await self.database.run_write("register_user", insert)
        except StoreConflictError:
            # Lost a race with a concurrent registration for the same email
            return None, EMAIL_TAKEN

        logger.info("User registered", email=user.email, role=UserRole(user.role).value)
        return user, None

    async def login(
        self, email: str, password: str
    ) -> tuple[Optional[User], Optional[str]]:
        """
        Authenticate user and return user object.
        Returns (user, None) on success, (None, error_message) on failure.
        """
        user = await self.get_user_by_email(email)
        if not user or not user.verify_password(password):
            return None, INVALID_CREDENTIALS

        logger.info("User logged in", email=user.email)
        return user, None

    def create_access_token(self, user: User) -> str:
        """Create JWT access token for user."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": UserRole(user.role).value,
            "exp": now + timedelta(minutes=self.settings.jwt_expire_minutes),
            "iat": now
        }
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self._algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify JWT token and return payload.
        Returns None if token is invalid or expired.
        """
        try:
            return jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self._algorithm]
            )
        except JWTError as e:
            logger.debug("Token verification failed", error=str(e))
            return None
