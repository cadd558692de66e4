"""SQLModel database models and tables."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import field_validator, model_validator
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func
from sqlalchemy.types import TypeDecorator


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to an aware UTC datetime. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Datetime column stored as naive UTC and loaded back as aware UTC.

    SQLite has no timezone-aware storage; without this an offset is dropped on
    write and rows come back naive.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        value = to_utc(value)
        return value.replace(tzinfo=None) if value is not None else None

    def process_result_value(self, value, dialect):
        return to_utc(value)


class TaskBase(SQLModel):
    """Fields shared by the task table and its create payload."""

    title: str = Field(min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    due_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    assigned_to: Optional[str] = Field(default=None, max_length=255)

    @field_validator("due_date")
    @classmethod
    def due_date_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)


class Task(TaskBase, table=True):
    """Task list entry. The id is generated once and never changes."""

    __tablename__ = "tasks"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        max_length=36
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(UTCDateTime(), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(UTCDateTime(), nullable=False)
    )


class TaskCreate(TaskBase):
    """Validated payload for a new task."""


class TaskUpdate(SQLModel):
    """Partial update; at least one field must be provided."""

    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = Field(default=None, max_length=255)

    @field_validator("due_date")
    @classmethod
    def due_date_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)

    @model_validator(mode="after")
    def require_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        for name in ("title", "status", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self
