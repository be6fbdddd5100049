# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures and configuration."""

from __future__ import annotations

from datetime import UTC, datetime

import aiosqlite
import pytest

from regwatch.scheduler.store import JobStore, ScheduleStore
from regwatch.storage.database import close_db, init_db

T0 = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep developer REGWATCH_* settings out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("REGWATCH_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("REGWATCH_LOG_FORMAT", "text")


@pytest.fixture
async def db():
    """In-memory database with all migrations applied."""
    import regwatch.storage.database as db_mod

    db_mod._db = None
    conn = await init_db(":memory:")
    yield conn
    await close_db()


@pytest.fixture
async def schedule_store(db: aiosqlite.Connection) -> ScheduleStore:
    return ScheduleStore(db)


@pytest.fixture
async def job_store(db: aiosqlite.Connection) -> JobStore:
    return JobStore(db)
