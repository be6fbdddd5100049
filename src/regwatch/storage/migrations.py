# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Schema migrations for the schedule and job tables.

Migrations are coroutines registered under an increasing version number.
Applied versions are recorded in ``schema_migrations`` only after the
migration succeeds.  Every migration is idempotent, so one that fails is
reported as StorageError and simply retried on the next start.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import aiosqlite

from regwatch.core.exceptions import StorageError

logger = logging.getLogger("regwatch.storage.migrations")

MigrationFunc = Callable[[aiosqlite.Connection], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    name: str
    func: MigrationFunc


_MIGRATIONS: list[Migration] = []


def _register(version: int, name: str) -> Callable[[MigrationFunc], MigrationFunc]:
    if _MIGRATIONS and version <= _MIGRATIONS[-1].version:
        raise ValueError(f"Migration {version} registered out of order")

    def decorator(fn: MigrationFunc) -> MigrationFunc:
        _MIGRATIONS.append(Migration(version=version, name=name, func=fn))
        return fn

    return decorator


_CREATE_SCHEMA_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""


async def _ensure_migrations_table(db: aiosqlite.Connection) -> None:
    await db.execute(_CREATE_SCHEMA_MIGRATIONS)
    await db.commit()


async def get_current_version(db: aiosqlite.Connection) -> int:
    """Highest applied version; 0 for a fresh database."""
    await _ensure_migrations_table(db)
    cursor = await db.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def get_pending_migrations(db: aiosqlite.Connection) -> list[Migration]:
    current = await get_current_version(db)
    return [m for m in _MIGRATIONS if m.version > current]


async def run_migrations(db: aiosqlite.Connection) -> list[Migration]:
    """Apply pending migrations in version order and return them."""
    applied: list[Migration] = []
    for migration in await get_pending_migrations(db):
        logger.info("Applying migration %03d: %s", migration.version, migration.name)
        try:
            await migration.func(db)
            await db.execute(
                "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                (migration.version, migration.name),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            await db.rollback()
            raise StorageError(
                f"Migration {migration.version:03d} ({migration.name}) failed: {exc}"
            ) from exc
        applied.append(migration)
    return applied


# =========================================================================
# Migration 001 -- research_schedules
# =========================================================================

_CREATE_RESEARCH_SCHEDULES = """
CREATE TABLE IF NOT EXISTS research_schedules (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    cron_expression TEXT NOT NULL,
    states TEXT NOT NULL,
    data_types TEXT NOT NULL,
    depth TEXT NOT NULL DEFAULT 'summary',
    is_active INTEGER NOT NULL DEFAULT 1,
    last_run_at TEXT,
    next_run_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_INDEXES_001 = [
    "CREATE INDEX IF NOT EXISTS idx_research_schedules_active ON research_schedules(is_active);",
    "CREATE INDEX IF NOT EXISTS idx_research_schedules_next_run "
    "ON research_schedules(next_run_at);",
    "CREATE INDEX IF NOT EXISTS idx_research_schedules_created ON research_schedules(created_at);",
]


@_register(1, "research_schedules")
async def _migration_001_research_schedules(db: aiosqlite.Connection) -> None:
    """Create the research_schedules table."""
    await db.execute(_CREATE_RESEARCH_SCHEDULES)
    for idx_sql in _INDEXES_001:
        await db.execute(idx_sql)


# =========================================================================
# Migration 002 -- research_jobs and their progress logs
# =========================================================================

_CREATE_RESEARCH_JOBS = """
CREATE TABLE IF NOT EXISTS research_jobs (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    states TEXT NOT NULL,
    data_types TEXT NOT NULL,
    depth TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    artifact_count INTEGER,
    program_count INTEGER,
    error_text TEXT
);
"""

_CREATE_RESEARCH_JOB_LOGS = """
CREATE TABLE IF NOT EXISTS research_job_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL REFERENCES research_jobs(id) ON DELETE CASCADE,
    line TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

_INDEXES_002 = [
    "CREATE INDEX IF NOT EXISTS idx_research_jobs_status ON research_jobs(status);",
    "CREATE INDEX IF NOT EXISTS idx_research_jobs_started_at ON research_jobs(started_at);",
    "CREATE INDEX IF NOT EXISTS idx_research_job_logs_job_id ON research_job_logs(job_id);",
]


@_register(2, "research_jobs")
async def _migration_002_research_jobs(db: aiosqlite.Connection) -> None:
    """Create the research_jobs and research_job_logs tables."""
    await db.execute(_CREATE_RESEARCH_JOBS)
    await db.execute(_CREATE_RESEARCH_JOB_LOGS)
    for idx_sql in _INDEXES_002:
        await db.execute(idx_sql)
