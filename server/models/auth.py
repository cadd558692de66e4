"""User authentication models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import func
import bcrypt

from models.database import UTCDateTime


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class User(SQLModel, table=True):
    """User account for authentication."""

    __tablename__ = "users"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        max_length=36
    )
    username: str = Field(max_length=100)
    email: str = Field(unique=True, index=True, max_length=255)
    password_hash: str = Field(max_length=255)
    role: UserRole = Field(default=UserRole.USER)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(UTCDateTime(), server_default=func.now())
    )

    def set_password(self, password: str) -> None:
        """Hash and set password using bcrypt."""
        salt = bcrypt.gensalt()
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify_password(self, password: str) -> bool:
        """Verify password against stored hash."""
        return bcrypt.checkpw(
            password.encode('utf-8'),
            self.password_hash.encode('utf-8')
        )

    @classmethod
    def create(cls, username: str, email: str, password: str,
               role: UserRole = UserRole.USER) -> "User":
        """Factory method to create a user with hashed password."""
        user = cls(
            username=username.strip(),
            email=email.lower().strip(),
            password_hash="",  # Will be set below
            role=role
        )
        user.set_password(password)
        return user
