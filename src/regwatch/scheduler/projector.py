# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Read-side projection of upcoming scheduled executions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from regwatch.core.constants import DEFAULT_UPCOMING_HOURS
from regwatch.core.exceptions import ValidationError
from regwatch.scheduler.jobs import Schedule
from regwatch.scheduler.store import ScheduleStore, utc


@dataclass(frozen=True)
class UpcomingExecution:
    schedule: Schedule
    next_fire_time: datetime
    time_until: timedelta

    def to_dict(self) -> dict:
        return {
            "schedule": self.schedule.to_dict(),
            "next_fire_time": self.next_fire_time.isoformat(),
            "time_until_seconds": int(self.time_until.total_seconds()),
        }


async def upcoming(
    store: ScheduleStore,
    horizon_hours: float = DEFAULT_UPCOMING_HOURS,
    *,
    now: datetime | None = None,
) -> list[UpcomingExecution]:
    """Active schedules firing within *horizon_hours* of *now*, soonest first.

    Overdue schedules (``next_run_at`` already passed) are included with a
    negative ``time_until``; they fire on the next tick.
    """
    if horizon_hours <= 0:
        raise ValidationError("horizon_hours must be positive")

    now = utc(now)
    cutoff = now + timedelta(hours=horizon_hours)
    executions = [
        UpcomingExecution(
            schedule=schedule,
            next_fire_time=schedule.next_run_at,
            time_until=schedule.next_run_at - now,
        )
        for schedule in await store.list_active()
        if schedule.next_run_at <= cutoff
    ]
    return sorted(executions, key=lambda e: e.next_fire_time)
