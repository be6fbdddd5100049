# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""The shared aiosqlite connection used by the schedule and job stores.

The API server and ``regwatch`` CLI commands may open the same file at the
same time (``schedule create`` while ``serve`` is ticking), so file
databases run in WAL mode with a busy timeout.  ``:memory:`` is accepted
for tests.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from regwatch.core.exceptions import StorageError
from regwatch.storage.migrations import run_migrations

logger = logging.getLogger("regwatch.storage.database")

_MEMORY = ":memory:"
_BUSY_TIMEOUT_MS = 5000

_db: aiosqlite.Connection | None = None


async def init_db(
    db_path: Path | str = "regwatch.db",
    *,
    auto_migrate: bool = True,
) -> aiosqlite.Connection:
    """Open the connection (once) and bring the schema up to date.

    Calling it again while a connection is open returns that connection
    untouched.  Any failure closes the half-open connection and surfaces
    as StorageError.
    """
    global _db

    if _db is not None:
        return _db

    target = str(db_path)
    try:
        if target != _MEMORY:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
        _db = await aiosqlite.connect(target)
        _db.row_factory = aiosqlite.Row
        await _db.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
        await _db.execute("PRAGMA foreign_keys=ON")
        if target != _MEMORY:
            await _db.execute("PRAGMA journal_mode=WAL")

        if auto_migrate:
            await run_migrations(_db)
    except StorageError:
        await close_db()
        raise
    except (aiosqlite.Error, OSError) as exc:
        await close_db()
        raise StorageError(f"Failed to initialize database at {target}: {exc}") from exc

    logger.debug("Database ready at %s", target)
    return _db


async def get_db() -> aiosqlite.Connection:
    """Return the open connection, or raise StorageError before ``init_db``."""
    if _db is None:
        raise StorageError("Database not initialized. Call init_db() first.")
    return _db


async def close_db() -> None:
    global _db

    if _db is not None:
        await _db.close()
        _db = None
