# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared setup for CLI commands that need the stores or the engine."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer

from regwatch.scheduler.runtime import SchedulerRuntime


@asynccontextmanager
async def runtime_session() -> AsyncIterator[SchedulerRuntime]:
    """Open the database, build a runtime, and tear both down on exit.

    Local research jobs started by the command get the configured grace
    period to finish before the connection is closed.
    """
    from regwatch.core.config import get_settings
    from regwatch.core.exceptions import ConfigurationError
    from regwatch.scheduler.runtime import build_runtime
    from regwatch.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path, auto_migrate=settings.auto_migrate)

    try:
        try:
            runtime = build_runtime(db, settings)
        except ConfigurationError as exc:
            typer.echo(f"Configuration error: {exc}", err=True)
            raise typer.Exit(1) from exc
        try:
            yield runtime
        finally:
            await runtime.aclose()
    finally:
        await close_db()


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated option value, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def validation_message(exc: Exception) -> str:
    """One-line summary of a pydantic validation error."""
    errors = getattr(exc, "errors", None)
    if errors is None:
        return str(exc)
    parts = []
    for err in errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)
