"""Modern async database service with SQLModel and SQLAlchemy 2.0.

SQLite allows many readers but a single writer. Every pooled connection is
configured for write-ahead logging with a bounded busy wait, and statements
that still hit a locked database are retried a fixed number of times before
surfacing as StoreTransientError.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from sqlmodel import SQLModel, select
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from contextlib import asynccontextmanager

from core.config import Settings
from core.exceptions import (
    NotFoundError, StoreConflictError, StoreError, StoreFatalError, StoreTransientError
)
from core.logging import get_logger, log_store_retry
from models.database import Task, TaskCreate
from models.auth import User  # Import User model to ensure table creation

logger = get_logger(__name__)

T = TypeVar("T")

BUSY_MARKERS = (
    "database is locked",
    "database table is locked",
    "database is busy",
)


def is_busy_error(error: BaseException) -> bool:
    """Check whether an error is SQLite lock contention (SQLITE_BUSY/SQLITE_LOCKED)."""
    if not isinstance(error, OperationalError):
        return False
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in BUSY_MARKERS)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None
        self.journal_mode: Optional[str] = None

    async def startup(self):
        """Open the store, apply concurrency settings and create tables.

        Any failure here is fatal: the caller must not serve traffic.
        """
        try:
            self.engine = create_async_engine(
                self.settings.database_url,
                echo=self.settings.database_echo,
                future=True
            )
            self.configure_for_concurrency()

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                result = await conn.exec_driver_sql("PRAGMA journal_mode")
                self.journal_mode = str(result.scalar()).lower()
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info(
                "Database initialized successfully",
                journal_mode=self.journal_mode,
                busy_timeout_ms=self.settings.sqlite_busy_timeout_ms,
                cache_size_kb=self.settings.sqlite_cache_size_kb
            )

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            if self.engine:
                await self.engine.dispose()
            self.engine = None
            self.async_session = None
            raise StoreFatalError(f"Could not open database: {e}") from e

    def configure_for_concurrency(self) -> None:
        """Register the PRAGMAs every new connection runs before its first query.

        journal_mode=WAL persists in the database file; the remaining settings
        are per connection, so they are applied on each pool checkout of a
        fresh DBAPI connection.
        """
        busy_timeout = int(self.settings.sqlite_busy_timeout_ms)
        cache_size = int(self.settings.sqlite_cache_size_kb)

        @event.listens_for(self.engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
                # Negative value is a size in KiB rather than pages
                cursor.execute(f"PRAGMA cache_size=-{cache_size}")
            finally:
                cursor.close()

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Statement execution with busy retry
    # ============================================================================

    async def _execute(self, operation_name: str,
                       operation: Callable[[AsyncSession], Awaitable[T]],
                       commit: bool) -> T:
        max_attempts = self.settings.sqlite_busy_retries

        for attempt in range(1, max_attempts + 1):
            try:
                async with self.get_session() as session:
                    result = await operation(session)
                    if commit:
                        await session.commit()
                    return result

            except OperationalError as e:
                if not is_busy_error(e):
                    logger.error("Store operation failed", operation=operation_name, error=str(e))
                    raise StoreError(f"{operation_name} failed: {e}") from e

                if attempt == max_attempts:
                    logger.error(
                        "Store busy, retries exhausted",
                        operation=operation_name,
                        attempts=attempt
                    )
                    raise StoreTransientError(operation_name, attempt) from e

                log_store_retry(logger, operation_name, attempt, max_attempts, str(e))
                await asyncio.sleep(self.settings.sqlite_retry_delay * attempt)

            except IntegrityError as e:
                logger.warning("Store constraint violated", operation=operation_name, error=str(e.orig))
                raise StoreConflictError(operation_name, str(e.orig)) from e

            except SQLAlchemyError as e:
                logger.error("Store operation failed", operation=operation_name, error=str(e))
                raise StoreError(f"{operation_name} failed: {e}") from e

        raise StoreTransientError(operation_name, max_attempts)

    async def run_read(self, operation_name: str,
                       operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a read-only unit of work."""
        return await self._execute(operation_name, operation, commit=False)

    async def run_write(self, operation_name: str,
                        operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a unit of work and commit it.

        Returns only after the commit succeeded; raises StoreError,
        StoreTransientError, StoreConflictError or the operation's own error otherwise.
        """
        return await self._execute(operation_name, operation, commit=True)

    async def check_health(self) -> bool:
        """Check database connectivity."""
        try:
            async def ping(session: AsyncSession) -> Any:
                return (await session.execute(text("SELECT 1"))).scalar()

            return await self.run_read("health_check", ping) == 1
        except Exception as e:
            logger.warning("Database health check failed", error=str(e))
            return False

    # ============================================================================
    # Tasks
    # ============================================================================

    async def create_task(self, data: TaskCreate) -> Task:
        """Insert a new task."""
        async def insert(session: AsyncSession) -> Task:
            task = Task.model_validate(data)
            session.add(task)
            await session.flush()
            return task

        task = await self.run_write("create_task", insert)
        logger.debug("Task created", task_id=task.id)
        return task

    async def get_all_tasks(self) -> List[Task]:
        """Get all tasks, oldest first."""
        async def query(session: AsyncSession) -> List[Task]:
            stmt = select(Task).order_by(Task.created_at, Task.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self.run_read("get_all_tasks", query)

    async def get_task(self, task_id: str) -> Task:
        """Get task by ID."""
        async def query(session: AsyncSession) -> Task:
            task = await session.get(Task, task_id)
            if task is None:
                raise NotFoundError("Task", task_id)
            return task

        return await self.run_read("get_task", query)

    async def update_task(self, task_id: str, patch: Dict[str, Any]) -> Task:
        """Apply a partial update to a task."""
        async def apply(session: AsyncSession) -> Task:
            task = await session.get(Task, task_id)
            if task is None:
                raise NotFoundError("Task", task_id)

            for field, value in patch.items():
                if field in ("id", "created_at", "updated_at"):
                    continue
                setattr(task, field, value)
            task.updated_at = datetime.now(timezone.utc)

            session.add(task)
            await session.flush()
            return task

        task = await self.run_write("update_task", apply)
        logger.debug("Task updated", task_id=task_id, fields=sorted(patch))
        return task

    async def delete_task(self, task_id: str) -> None:
        """Delete task."""
        async def remove(session: AsyncSession) -> None:
            task = await session.get(Task, task_id)
            if task is None:
                raise NotFoundError("Task", task_id)
            await session.delete(task)

        await self.run_write("delete_task", remove)
        logger.debug("Task deleted", task_id=task_id)
