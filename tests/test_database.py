# tests/test_database.py

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from core.config import Settings
from core.database import Database, is_busy_error
from core.exceptions import (
    NotFoundError, StoreConflictError, StoreError, StoreFatalError, StoreTransientError
)
from models.auth import User
from models.database import TaskCreate, TaskPriority, TaskStatus, TaskUpdate


def busy_error() -> OperationalError:
    return OperationalError("INSERT INTO tasks", {}, sqlite3.OperationalError("database is locked"))


def db_path(settings: Settings) -> str:
    return settings.database_url.split("///", 1)[1]


async def test_connections_use_wal_and_busy_timeout(database: Database) -> None:
    assert database.journal_mode == "wal"

    async def read_pragmas(session):
        values = {}
        for name in ("journal_mode", "synchronous", "busy_timeout", "cache_size"):
            values[name] = (await session.execute(text(f"PRAGMA {name}"))).scalar()
        return values

    pragmas = await database.run_read("pragmas", read_pragmas)

    assert str(pragmas["journal_mode"]).lower() == "wal"
    assert pragmas["synchronous"] == 1  # NORMAL
    assert pragmas["busy_timeout"] == 5000
    assert pragmas["cache_size"] == -2000


async def test_unopenable_store_is_fatal(tmp_path: Path, settings: Settings) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    settings.database_url = f"sqlite+aiosqlite:///{blocker / 'taskboard.db'}"

    db = Database(settings)
    with pytest.raises(StoreFatalError):
        await db.startup()
    assert db.engine is None


async def test_task_crud(database: Database) -> None:
    created = await database.create_task(TaskCreate(title="Write report", priority=TaskPriority.HIGH))
    assert created.id
    assert created.status is TaskStatus.PENDING

    fetched = await database.get_task(created.id)
    assert fetched.title == "Write report"

    updated = await database.update_task(created.id, {"status": TaskStatus.COMPLETED})
    assert updated.status == TaskStatus.COMPLETED
    assert updated.id == created.id

    await database.delete_task(created.id)
    assert await database.get_all_tasks() == []


async def test_update_ignores_immutable_fields(database: Database) -> None:
    created = await database.create_task(TaskCreate(title="Keep my id"))
    updated = await database.update_task(created.id, {"id": "other", "title": "Renamed"})
    assert updated.id == created.id
    assert updated.title == "Renamed"


async def test_missing_records_raise_not_found(database: Database) -> None:
    with pytest.raises(NotFoundError):
        await database.get_task("missing")
    with pytest.raises(NotFoundError):
        await database.update_task("missing", {"title": "x"})
    with pytest.raises(NotFoundError):
        await database.delete_task("missing")


async def test_list_is_ordered_by_creation(database: Database) -> None:
    first = await database.create_task(TaskCreate(title="First task"))
    second = await database.create_task(TaskCreate(title="Second task"))
    assert [t.id for t in await database.get_all_tasks()] == [first.id, second.id]


def test_busy_error_classification() -> None:
    assert is_busy_error(busy_error())
    other = OperationalError("SELECT", {}, sqlite3.OperationalError("no such table: tasks"))
    assert not is_busy_error(other)
    assert not is_busy_error(RuntimeError("database is locked"))


async def test_busy_error_is_retried(database: Database) -> None:
    attempts = 0

    async def flaky(session):
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise busy_error()
        return "done"

    assert await database.run_write("flaky", flaky) == "done"
    assert attempts == 3


async def test_retry_exhaustion_is_transient(database: Database) -> None:
    attempts = 0

    async def always_busy(session):
        nonlocal attempts
        attempts += 1
        raise busy_error()

    with pytest.raises(StoreTransientError) as exc_info:
        await database.run_write("always_busy", always_busy)

    assert attempts == database.settings.sqlite_busy_retries == 5
    assert exc_info.value.attempts == 5


async def test_other_operational_errors_are_not_retried(database: Database) -> None:
    attempts = 0

    async def broken(session):
        nonlocal attempts
        attempts += 1
        raise OperationalError("SELECT", {}, sqlite3.OperationalError("disk I/O error"))

    with pytest.raises(StoreError) as exc_info:
        await database.run_read("broken", broken)

    assert not isinstance(exc_info.value, StoreTransientError)
    assert attempts == 1


async def test_unique_violation_is_a_conflict_not_retried(database: Database) -> None:
    attempts = 0

    async def insert_twice(session):
        nonlocal attempts
        attempts += 1
        session.add(User.create(username="a", email="same@example.com", password="password-one"))
        session.add(User.create(username="b", email="same@example.com", password="password-two"))
        await session.flush()

    with pytest.raises(StoreConflictError) as exc_info:
        await database.run_write("insert_twice", insert_twice)

    assert attempts == 1
    assert "UNIQUE" in exc_info.value.detail


async def test_timestamps_load_back_as_utc(database: Database) -> None:
    created = await database.create_task(
        TaskCreate(title="Offset", due_date=datetime(2026, 11, 1, 9, tzinfo=timezone(timedelta(hours=5))))
    )
    assert created.due_date == datetime(2026, 11, 1, 4, tzinfo=timezone.utc)

    loaded = await database.get_task(created.id)
    assert loaded.due_date == created.due_date
    assert loaded.due_date.tzinfo is not None
    assert loaded.created_at == created.created_at
    assert loaded.created_at.utcoffset() == timedelta(0)

    patch = TaskUpdate(due_date="2026-12-01T00:00:00").model_dump(exclude_unset=True)
    updated = await database.update_task(created.id, patch)
    assert updated.due_date == datetime(2026, 12, 1, tzinfo=timezone.utc)


async def test_writer_waits_for_lock_holder(settings: Settings, database: Database) -> None:
    holder = sqlite3.connect(db_path(settings), isolation_level=None)
    try:
        holder.execute("BEGIN IMMEDIATE")
        pending = asyncio.create_task(database.create_task(TaskCreate(title="Second writer")))
        await asyncio.sleep(0.3)
        assert not pending.done()
        holder.execute("COMMIT")

        task = await asyncio.wait_for(pending, timeout=5)
    finally:
        holder.close()

    assert [t.id for t in await database.get_all_tasks()] == [task.id]


async def test_contended_writer_surfaces_transient_error(settings: Settings) -> None:
    settings.sqlite_busy_timeout_ms = 50
    settings.sqlite_busy_retries = 2
    db = Database(settings)
    await db.startup()
    try:
        committed = await db.create_task(TaskCreate(title="Committed before contention"))

        holder = sqlite3.connect(db_path(settings), isolation_level=None)
        try:
            holder.execute("BEGIN IMMEDIATE")
            with pytest.raises(StoreTransientError):
                await db.create_task(TaskCreate(title="Loses the race"))
            holder.execute("ROLLBACK")
        finally:
            holder.close()

        tasks = await db.get_all_tasks()
        assert [t.id for t in tasks] == [committed.id]
    finally:
        await db.shutdown()


async def test_readers_proceed_while_writer_holds_lock(settings: Settings, database: Database) -> None:
    await database.create_task(TaskCreate(title="Visible task"))

    holder = sqlite3.connect(db_path(settings), isolation_level=None)
    try:
        holder.execute("BEGIN IMMEDIATE")
        holder.execute("DELETE FROM tasks")
        tasks = await asyncio.wait_for(database.get_all_tasks(), timeout=2)
        assert [t.title for t in tasks] == ["Visible task"]
        holder.execute("ROLLBACK")
    finally:
        holder.close()
