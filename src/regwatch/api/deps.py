# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""FastAPI dependencies that hand routes the scheduler runtime."""

from __future__ import annotations

from fastapi import Request

from regwatch.scheduler.runtime import SchedulerRuntime, build_runtime


async def get_runtime(request: Request) -> SchedulerRuntime:
    """Return the app's runtime, building it on first use.

    The lifespan normally creates (and starts) it; when the app is driven
    without a lifespan, as in tests, it is built lazily on the open
    database connection and the engine is left stopped.
    """
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        from regwatch.core.config import get_settings
        from regwatch.storage.database import get_db

        db = await get_db()
        runtime = build_runtime(db, get_settings())
        request.app.state.runtime = runtime
    return runtime
