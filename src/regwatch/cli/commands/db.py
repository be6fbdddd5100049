# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database management commands."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

app = typer.Typer(help="Manage the regwatch database")


@app.command()
def init() -> None:
    """Create the database file and apply every migration."""
    asyncio.run(_init_db())


async def _init_db() -> None:
    from regwatch.core.config import get_settings
    from regwatch.storage.database import close_db, init_db
    from regwatch.storage.migrations import get_current_version

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        version = await get_current_version(db)
    finally:
        await close_db()
    typer.echo(f"Database ready at {settings.db_path} (schema version {version}).")


@app.command()
def migrate(
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="List pending migrations without applying them")
    ] = False,
) -> None:
    """Apply pending schema migrations in order."""
    asyncio.run(_migrate_db(dry_run))


async def _migrate_db(dry_run: bool) -> None:
    from regwatch.core.config import get_settings
    from regwatch.storage.database import close_db, init_db
    from regwatch.storage.migrations import (
        get_current_version,
        get_pending_migrations,
        run_migrations,
    )

    settings = get_settings()
    db = await init_db(settings.db_path, auto_migrate=False)
    try:
        current = await get_current_version(db)
        pending = await get_pending_migrations(db)
        typer.echo(f"{settings.db_path}: schema version {current}")

        if not pending:
            typer.echo("Schema is up to date.")
            return
        if dry_run:
            for m in pending:
                typer.echo(f"  pending {m.version:03d} {m.name}")
            return

        for m in await run_migrations(db):
            typer.echo(f"  applied {m.version:03d} {m.name}")
        typer.echo(f"Schema version is now {await get_current_version(db)}.")
    finally:
        await close_db()


@app.command()
def stats() -> None:
    """Count schedules by state and research jobs by status."""
    asyncio.run(_show_stats())


async def _show_stats() -> None:
    from regwatch.core.config import get_settings
    from regwatch.core.constants import JobStatus
    from regwatch.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        cursor = await db.execute(
            "SELECT is_active, COUNT(*) FROM research_schedules GROUP BY is_active"
        )
        by_active = {bool(row[0]): row[1] for row in await cursor.fetchall()}
        cursor = await db.execute("SELECT status, COUNT(*) FROM research_jobs GROUP BY status")
        by_status = {row[0]: row[1] for row in await cursor.fetchall()}
    finally:
        await close_db()

    typer.echo(f"Database: {settings.db_path}")
    typer.echo(
        f"Schedules: {by_active.get(True, 0)} active, {by_active.get(False, 0)} inactive"
    )
    typer.echo(
        "Jobs: " + ", ".join(f"{by_status.get(str(s), 0)} {s}" for s in JobStatus)
    )
