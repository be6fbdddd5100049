# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""SchedulerEngine: polls for due research schedules and dispatches them.

Uses pure asyncio.  The engine owns one background task which ticks every
``check_interval`` seconds until ``stop()`` sets its stop event.  Ticks are
serialised with a lock, so a manual tick from the API or CLI can never
overlap the background one.

Per due schedule the engine consults the duplicate guard, dispatches, and
then always advances ``last_run_at``/``next_run_at``.  Semantics are
at-least-once: a schedule that came due while the process was down fires
once on the first tick after restart.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from regwatch.core.constants import DEFAULT_CHECK_INTERVAL_SECONDS
from regwatch.core.exceptions import DispatchError, ParseError
from regwatch.scheduler.cron import validate_cron
from regwatch.scheduler.dispatcher import JobDispatcher
from regwatch.scheduler.guard import DuplicateGuard
from regwatch.scheduler.jobs import Schedule
from regwatch.scheduler.store import ScheduleStore, utc

logger = logging.getLogger("regwatch.scheduler.engine")


class Outcome(StrEnum):
    DISPATCHED = "dispatched"
    SKIPPED = "skipped"  # equivalent work already active
    FAILED = "failed"
    INVALID = "invalid"  # stored cron expression no longer evaluates


@dataclass
class ScheduleResult:
    """What happened to one schedule during a tick."""

    schedule_id: str
    name: str
    outcome: Outcome
    job_ids: list[str] = field(default_factory=list)
    error: str | None = None
    next_run_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "schedule_id": self.schedule_id,
            "name": self.name,
            "outcome": str(self.outcome),
            "job_ids": list(self.job_ids),
            "error": self.error,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }


@dataclass
class TickReport:
    """Summary of one pass over the due schedules."""

    tick_at: datetime
    results: list[ScheduleResult] = field(default_factory=list)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    def to_dict(self) -> dict:
        return {
            "tick_at": self.tick_at.isoformat(),
            "due": len(self.results),
            "dispatched": self.count(Outcome.DISPATCHED),
            "skipped": self.count(Outcome.SKIPPED),
            "failed": self.count(Outcome.FAILED),
            "invalid": self.count(Outcome.INVALID),
            "results": [r.to_dict() for r in self.results],
        }


class SchedulerEngine:
    """Asyncio-based scheduler that polls for due schedules and dispatches research."""

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: JobDispatcher,
        guard: DuplicateGuard,
        *,
        check_interval: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        stop_grace: float = 10.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._guard = guard
        self._check_interval = check_interval
        self._stop_grace = stop_grace
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._tick_lock = asyncio.Lock()
        self._last_tick: TickReport | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def check_interval(self) -> float:
        return self._check_interval

    @property
    def last_tick(self) -> TickReport | None:
        return self._last_tick

    async def start(self) -> None:
        """Start the scheduler background loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="regwatch-scheduler")
        logger.info("Scheduler engine started (interval=%ss)", self._check_interval)

    async def stop(self) -> None:
        """Stop the loop, letting an in-flight tick finish within the grace period."""
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        _done, pending = await asyncio.wait({task}, timeout=self._stop_grace)
        if pending:
            logger.warning("Scheduler tick did not finish within %ss; cancelling", self._stop_grace)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None
        logger.info("Scheduler engine stopped")

    async def _loop(self) -> None:
        """Main loop: tick, then wait for the interval or the stop signal."""
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler tick failed; retrying in %ss", self._check_interval)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._check_interval)

    async def tick(self, now: datetime | None = None) -> TickReport:
        """Process every schedule due at *now* (default: the engine clock).

        Only a failure to list due schedules escapes; per-schedule errors
        are logged and recorded in the report.
        """
        async with self._tick_lock:
            now = utc(now or self._clock())
            due = await self._store.list_due(now)
            report = TickReport(tick_at=now)

            for schedule in due:
                report.results.append(await self._process(schedule, now))

            self._last_tick = report
            if due:
                logger.info(
                    "Tick at %s: %d due, %d dispatched, %d skipped, %d failed, %d invalid",
                    now.isoformat(), len(due),
                    report.count(Outcome.DISPATCHED), report.count(Outcome.SKIPPED),
                    report.count(Outcome.FAILED), report.count(Outcome.INVALID),
                )
            else:
                logger.debug("Tick at %s: nothing due", now.isoformat())
            return report

    async def run_now(self, schedule: Schedule, now: datetime | None = None) -> ScheduleResult:
        """Run one schedule immediately, subject to the same duplicate check as a tick.

        Unlike a tick, the schedule only advances when work was actually
        dispatched; a skipped or failed manual run leaves it untouched.
        """
        async with self._tick_lock:
            return await self._process(
                schedule, utc(now or self._clock()), advance_on_failure=False
            )

    async def _process(
        self, schedule: Schedule, now: datetime, *, advance_on_failure: bool = True
    ) -> ScheduleResult:
        ctx = {"schedule_id": schedule.schedule_id}
        result = ScheduleResult(
            schedule_id=schedule.schedule_id,
            name=schedule.name,
            outcome=Outcome.FAILED,
        )

        try:
            validate_cron(schedule.cron_expression)
        except ParseError as exc:
            logger.error(
                "Schedule %s (%s) has an invalid cron expression %r; not dispatching "
                "and leaving next_run_at unchanged: %s",
                schedule.schedule_id, schedule.name, schedule.cron_expression, exc,
                extra=ctx,
            )
            result.outcome = Outcome.INVALID
            result.error = str(exc)
            result.next_run_at = schedule.next_run_at
            return result

        try:
            if await self._guard.has_equivalent_active_job(schedule.states, schedule.data_types):
                logger.warning(
                    "Skipping schedule %s (%s): equivalent research is already active",
                    schedule.schedule_id, schedule.name,
                    extra=ctx,
                )
                result.outcome = Outcome.SKIPPED
            else:
                result.job_ids = await self._dispatcher.dispatch(
                    schedule.states, schedule.data_types, schedule.depth
                )
                result.outcome = Outcome.DISPATCHED
                logger.info(
                    "Schedule %s (%s) dispatched %d job(s)",
                    schedule.schedule_id, schedule.name, len(result.job_ids),
                    extra=ctx,
                )
        except DispatchError as exc:
            logger.error(
                "Dispatch failed for schedule %s (%s): %s",
                schedule.schedule_id, schedule.name, exc,
                extra=ctx,
            )
            result.error = str(exc)
        except Exception as exc:
            logger.exception(
                "Unexpected error dispatching schedule %s (%s)",
                schedule.schedule_id, schedule.name,
                extra=ctx,
            )
            result.error = str(exc) or exc.__class__.__name__

        if result.outcome is not Outcome.DISPATCHED and not advance_on_failure:
            result.next_run_at = schedule.next_run_at
            return result

        # Ticks advance whatever happened above
        try:
            updated = await self._store.record_last_run(schedule.schedule_id, now)
        except ParseError as exc:
            logger.error(
                "Could not advance schedule %s (%s): %s",
                schedule.schedule_id, schedule.name, exc,
                extra=ctx,
            )
            result.outcome = Outcome.INVALID
            result.error = str(exc)
        except Exception as exc:
            logger.exception(
                "Failed to record run for schedule %s (%s)",
                schedule.schedule_id, schedule.name,
                extra=ctx,
            )
            result.error = result.error or f"Bookkeeping failed: {exc}"
        else:
            result.next_run_at = updated.next_run_at if updated else None

        return result
