# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Wires stores, guard, dispatcher, executor and engine from settings."""

from __future__ import annotations

from dataclasses import dataclass

import aiosqlite

from regwatch.core.config import Settings
from regwatch.scheduler.dispatcher import JobDispatcher
from regwatch.scheduler.engine import SchedulerEngine
from regwatch.scheduler.executors import HttpWorkExecutor, LocalWorkExecutor, build_executor
from regwatch.scheduler.guard import DuplicateGuard
from regwatch.scheduler.store import JobStore, ScheduleStore


@dataclass
class SchedulerRuntime:
    schedule_store: ScheduleStore
    job_store: JobStore
    guard: DuplicateGuard
    executor: LocalWorkExecutor | HttpWorkExecutor
    dispatcher: JobDispatcher
    engine: SchedulerEngine
    stop_grace: float = 10.0

    async def aclose(self) -> None:
        """Stop the engine, then give local research jobs the grace period to finish."""
        await self.engine.stop()
        if isinstance(self.executor, LocalWorkExecutor):
            await self.executor.aclose(timeout=self.stop_grace)


def build_runtime(db: aiosqlite.Connection, settings: Settings) -> SchedulerRuntime:
    schedule_store = ScheduleStore(db)
    job_store = JobStore(db)
    executor = build_executor(settings, job_store)
    refresh = executor.sync_active_jobs if isinstance(executor, HttpWorkExecutor) else None
    guard = DuplicateGuard(job_store, refresh=refresh)
    dispatcher = JobDispatcher(executor, timeout=settings.dispatch_timeout)
    engine = SchedulerEngine(
        schedule_store,
        dispatcher,
        guard,
        check_interval=settings.scheduler_interval,
        stop_grace=settings.scheduler_stop_grace,
    )
    return SchedulerRuntime(
        schedule_store=schedule_store,
        job_store=job_store,
        guard=guard,
        executor=executor,
        dispatcher=dispatcher,
        engine=engine,
        stop_grace=settings.scheduler_stop_grace,
    )
