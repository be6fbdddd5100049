# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""ScheduleStore and JobStore: persist schedules and research jobs to SQLite."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

import aiosqlite

from regwatch.core.constants import (
    ACTIVE_JOB_STATUSES,
    JOB_TRANSITIONS,
    TERMINAL_JOB_STATUSES,
    Depth,
    JobStatus,
)
from regwatch.core.exceptions import InvalidTransitionError, StorageError
from regwatch.models.requests import ScheduleCreate, ScheduleUpdate
from regwatch.scheduler.cron import next_run_from_cron
from regwatch.scheduler.jobs import (
    ResearchJob,
    ResearchStats,
    Schedule,
    WorkSignature,
    normalize_data_types,
    normalize_states,
)

logger = logging.getLogger("regwatch.scheduler.store")


def utc(moment: datetime | None = None) -> datetime:
    """Return *moment* as an aware UTC datetime (now if omitted)."""
    if moment is None:
        return datetime.now(UTC)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def _ts(moment: datetime | None) -> str | None:
    # Fixed-width UTC text so string ordering matches time ordering
    return utc(moment).isoformat(timespec="microseconds") if moment else None


def _parse_ts(text: str | None) -> datetime | None:
    return utc(datetime.fromisoformat(text)) if text else None


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.Error as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc


class ScheduleStore:
    """Persists recurring research schedules."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, data: ScheduleCreate, *, now: datetime | None = None) -> Schedule:
        """Insert a new schedule with its first ``next_run_at``.

        The cron expression is evaluated before anything is written, so a
        CronParseError leaves the store untouched.
        """
        now = utc(now)
        next_run = next_run_from_cron(data.cron_expression, now)

        schedule = Schedule(
            schedule_id=f"sched-{uuid.uuid4().hex[:12]}",
            name=data.name,
            description=data.description,
            cron_expression=data.cron_expression,
            states=normalize_states(data.states),
            data_types=normalize_data_types(data.data_types),
            depth=Depth(data.depth),
            is_active=data.is_active,
            next_run_at=next_run,
            created_at=now,
            updated_at=now,
        )

        with _storage_errors("create schedule"):
            await self._db.execute(
                """
                INSERT INTO research_schedules
                    (id, name, description, cron_expression, states, data_types,
                     depth, is_active, last_run_at, next_run_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._schedule_params(schedule),
            )
            await self._db.commit()

        logger.info(
            "Created schedule %s (%s) cron=%r next_run=%s",
            schedule.schedule_id, schedule.name, schedule.cron_expression,
            schedule.next_run_at.isoformat(),
        )
        return schedule

    async def get(self, schedule_id: str) -> Schedule | None:
        """Retrieve a single schedule by ID."""
        with _storage_errors("read schedule"):
            cursor = await self._db.execute(
                "SELECT * FROM research_schedules WHERE id = ?", (schedule_id,)
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_schedule(row)

    async def list_all(self) -> list[Schedule]:
        """Return all schedules, newest first."""
        return await self._select(
            "SELECT * FROM research_schedules ORDER BY created_at DESC, rowid DESC"
        )

    async def update(
        self,
        schedule_id: str,
        data: ScheduleUpdate,
        *,
        now: datetime | None = None,
    ) -> Schedule | None:
        """Apply a partial update; returns None if the schedule does not exist.

        A changed cron expression recomputes ``next_run_at`` relative to
        *now*.  If the new expression does not parse, CronParseError is
        raised and the stored record is left as it was.
        """
        now = utc(now)
        schedule = await self.get(schedule_id)
        if schedule is None:
            return None

        changes = data.model_dump(exclude_none=True)
        new_cron = changes.get("cron_expression")
        if new_cron is not None and new_cron != schedule.cron_expression:
            schedule.next_run_at = next_run_from_cron(new_cron, now)
            schedule.cron_expression = new_cron

        if "name" in changes:
            schedule.name = changes["name"]
        if "description" in changes:
            schedule.description = changes["description"]
        if "states" in changes:
            schedule.states = normalize_states(changes["states"])
        if "data_types" in changes:
            schedule.data_types = normalize_data_types(changes["data_types"])
        if "depth" in changes:
            schedule.depth = Depth(changes["depth"])
        if "is_active" in changes:
            schedule.is_active = changes["is_active"]
        schedule.updated_at = now

        with _storage_errors("update schedule"):
            await self._db.execute(
                """
                UPDATE research_schedules
                SET name = ?, description = ?, cron_expression = ?, states = ?,
                    data_types = ?, depth = ?, is_active = ?, next_run_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    schedule.name,
                    schedule.description,
                    schedule.cron_expression,
                    json.dumps(schedule.states),
                    json.dumps(schedule.data_types),
                    str(schedule.depth),
                    1 if schedule.is_active else 0,
                    _ts(schedule.next_run_at),
                    _ts(schedule.updated_at),
                    schedule.schedule_id,
                ),
            )
            await self._db.commit()
        return schedule

    async def delete(self, schedule_id: str) -> bool:
        """Delete a schedule. Returns True if it existed."""
        with _storage_errors("delete schedule"):
            cursor = await self._db.execute(
                "DELETE FROM research_schedules WHERE id = ?", (schedule_id,)
            )
            await self._db.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Scheduler queries
    # ------------------------------------------------------------------

    async def list_active(self) -> list[Schedule]:
        """Return active schedules, soonest ``next_run_at`` first."""
        return await self._select(
            "SELECT * FROM research_schedules WHERE is_active = 1 "
            "ORDER BY next_run_at ASC, created_at ASC"
        )

    async def list_due(self, now: datetime) -> list[Schedule]:
        """Return active schedules whose ``next_run_at`` is at or before *now*.

        Ordered soonest first; this is the order the scheduler dispatches in.
        """
        return await self._select(
            "SELECT * FROM research_schedules WHERE is_active = 1 AND next_run_at <= ? "
            "ORDER BY next_run_at ASC, created_at ASC",
            (_ts(now),),
        )

    async def record_last_run(self, schedule_id: str, now: datetime) -> Schedule | None:
        """Set ``last_run_at`` to *now* and advance ``next_run_at`` past it.

        Raises CronParseError (without writing) if the stored expression
        cannot be evaluated.
        """
        now = utc(now)
        schedule = await self.get(schedule_id)
        if schedule is None:
            return None

        schedule.next_run_at = next_run_from_cron(schedule.cron_expression, now)
        schedule.last_run_at = now
        schedule.updated_at = now

        with _storage_errors("record schedule run"):
            await self._db.execute(
                """
                UPDATE research_schedules
                SET last_run_at = ?, next_run_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    _ts(schedule.last_run_at),
                    _ts(schedule.next_run_at),
                    _ts(schedule.updated_at),
                    schedule_id,
                ),
            )
            await self._db.commit()
        return schedule

    # ------------------------------------------------------------------
    # Row conversion helpers
    # ------------------------------------------------------------------

    async def _select(self, sql: str, params: tuple = ()) -> list[Schedule]:
        with _storage_errors("query schedules"):
            cursor = await self._db.execute(sql, params)
            rows = await cursor.fetchall()
        return [self._row_to_schedule(row) for row in rows]

    @staticmethod
    def _schedule_params(schedule: Schedule) -> tuple:
        return (
            schedule.schedule_id,
            schedule.name,
            schedule.description,
            schedule.cron_expression,
            json.dumps(schedule.states),
            json.dumps(schedule.data_types),
            str(schedule.depth),
            1 if schedule.is_active else 0,
            _ts(schedule.last_run_at),
            _ts(schedule.next_run_at),
            _ts(schedule.created_at),
            _ts(schedule.updated_at),
        )

    @staticmethod
    def _row_to_schedule(row: aiosqlite.Row) -> Schedule:
        data = dict(row)
        return Schedule(
            schedule_id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            cron_expression=data["cron_expression"],
            states=json.loads(data["states"]),
            data_types=json.loads(data["data_types"]),
            depth=Depth(data["depth"]),
            is_active=bool(data["is_active"]),
            last_run_at=_parse_ts(data.get("last_run_at")),
            next_run_at=_parse_ts(data["next_run_at"]),
            created_at=_parse_ts(data["created_at"]),
            updated_at=_parse_ts(data["updated_at"]),
        )


class JobStore:
    """Persists research job records and their progress logs."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Job CRUD
    # ------------------------------------------------------------------

    async def create_job(
        self,
        states: list[str],
        data_types: list[str],
        depth: Depth | str = Depth.SUMMARY,
        *,
        job_id: str | None = None,
        now: datetime | None = None,
    ) -> ResearchJob:
        """Insert a new job in the ``queued`` state.

        *job_id* is only given for jobs that another worker already owns.
        """
        job = ResearchJob(
            job_id=job_id or f"job-{uuid.uuid4().hex[:12]}",
            states=normalize_states(states),
            data_types=normalize_data_types(data_types),
            depth=Depth(depth),
            status=JobStatus.QUEUED,
            started_at=utc(now),
        )
        with _storage_errors("create job"):
            await self._db.execute(
                """
                INSERT INTO research_jobs
                    (id, status, states, data_types, depth, started_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    job.job_id,
                    str(job.status),
                    json.dumps(job.states),
                    json.dumps(job.data_types),
                    str(job.depth),
                    _ts(job.started_at),
                ),
            )
            await self._db.commit()
        return job

    async def get_job(self, job_id: str) -> ResearchJob | None:
        """Retrieve a single job, including its log lines."""
        with _storage_errors("read job"):
            cursor = await self._db.execute(
                "SELECT * FROM research_jobs WHERE id = ?", (job_id,)
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        job = self._row_to_job(row)
        await self._attach_logs([job])
        return job

    async def list_jobs(
        self,
        *,
        status: JobStatus | str | None = None,
        state: str | None = None,
        limit: int = 100,
    ) -> list[ResearchJob]:
        """Return recent jobs, newest first, optionally filtered."""
        clauses: list[str] = []
        params: list[object] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(str(JobStatus(status)))
        if state is not None:
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(research_jobs.states) WHERE value = ?)"
            )
            params.append(state.strip().upper())

        sql = "SELECT * FROM research_jobs"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY started_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with _storage_errors("query jobs"):
            cursor = await self._db.execute(sql, tuple(params))
            rows = await cursor.fetchall()

        jobs = [self._row_to_job(row) for row in rows]
        await self._attach_logs(jobs)
        return jobs

    async def list_active_jobs(self) -> list[ResearchJob]:
        """Return jobs that are queued or running."""
        placeholders = ",".join("?" for _ in ACTIVE_JOB_STATUSES)
        with _storage_errors("query active jobs"):
            cursor = await self._db.execute(
                f"SELECT * FROM research_jobs WHERE status IN ({placeholders}) "  # noqa: S608
                "ORDER BY started_at ASC",
                tuple(str(s) for s in sorted(ACTIVE_JOB_STATUSES)),
            )
            rows = await cursor.fetchall()
        return [self._row_to_job(row) for row in rows]

    async def find_equivalent_active(
        self, states: list[str], data_types: list[str]
    ) -> list[ResearchJob]:
        """Active jobs whose state and data-type sets equal the given ones exactly."""
        wanted = WorkSignature.of(states, data_types)
        return [j for j in await self.list_active_jobs() if j.signature == wanted]

    # ------------------------------------------------------------------
    # Lifecycle (driven by work executors)
    # ------------------------------------------------------------------

    async def transition(
        self,
        job_id: str,
        status: JobStatus | str,
        *,
        stats: ResearchStats | None = None,
        error_text: str | None = None,
        now: datetime | None = None,
    ) -> ResearchJob:
        """Move a job to *status*, enforcing the job lifecycle.

        Terminal transitions stamp ``finished_at``; ``stats`` is only kept
        on success and ``error_text`` only on error.
        """
        status = JobStatus(status)
        job = await self.get_job(job_id)
        if job is None:
            raise InvalidTransitionError(f"Job {job_id} not found")
        if status not in JOB_TRANSITIONS[job.status]:
            raise InvalidTransitionError(
                f"Job {job_id} cannot move from {job.status} to {status}"
            )

        finished_at = utc(now) if status in TERMINAL_JOB_STATUSES else None
        if status is not JobStatus.SUCCESS:
            stats = None
        if status is not JobStatus.ERROR:
            error_text = None

        with _storage_errors("update job status"):
            # Compare-and-set on the previous status so concurrent writers cannot skip states
            cursor = await self._db.execute(
                """
                UPDATE research_jobs
                SET status = ?, finished_at = ?, artifact_count = ?,
                    program_count = ?, error_text = ?
                WHERE id = ? AND status = ?
                """,
                (
                    str(status),
                    _ts(finished_at),
                    stats.artifacts if stats else None,
                    stats.programs if stats else None,
                    error_text,
                    job_id,
                    str(job.status),
                ),
            )
            await self._db.commit()
        if cursor.rowcount == 0:
            raise InvalidTransitionError(f"Job {job_id} changed status concurrently")

        job.status = status
        job.finished_at = finished_at
        job.stats = stats
        job.error_text = error_text
        return job

    async def mark_running(self, job_id: str) -> ResearchJob:
        return await self.transition(job_id, JobStatus.RUNNING)

    async def mark_success(self, job_id: str, stats: ResearchStats | None = None) -> ResearchJob:
        return await self.transition(job_id, JobStatus.SUCCESS, stats=stats or ResearchStats())

    async def mark_error(self, job_id: str, error_text: str) -> ResearchJob:
        return await self.transition(job_id, JobStatus.ERROR, error_text=error_text)

    async def append_log(self, job_id: str, line: str, *, now: datetime | None = None) -> None:
        """Append one progress line to a job's log."""
        with _storage_errors("append job log"):
            await self._db.execute(
                "INSERT INTO research_job_logs (job_id, line, created_at) VALUES (?, ?, ?)",
                (job_id, line, _ts(utc(now))),
            )
            await self._db.commit()

    # ------------------------------------------------------------------
    # Row conversion helpers
    # ------------------------------------------------------------------

    async def _attach_logs(self, jobs: list[ResearchJob]) -> None:
        if not jobs:
            return
        by_id = {job.job_id: job for job in jobs}
        placeholders = ",".join("?" for _ in by_id)
        with _storage_errors("read job logs"):
            cursor = await self._db.execute(
                "SELECT job_id, line FROM research_job_logs "  # noqa: S608
                f"WHERE job_id IN ({placeholders}) ORDER BY id ASC",
                tuple(by_id),
            )
            rows = await cursor.fetchall()
        for row in rows:
            by_id[row["job_id"]].logs.append(row["line"])

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> ResearchJob:
        data = dict(row)
        stats = None
        if data.get("artifact_count") is not None or data.get("program_count") is not None:
            stats = ResearchStats(
                artifacts=data.get("artifact_count") or 0,
                programs=data.get("program_count") or 0,
            )
        return ResearchJob(
            job_id=data["id"],
            status=JobStatus(data["status"]),
            states=json.loads(data["states"]),
            data_types=json.loads(data["data_types"]),
            depth=Depth(data["depth"]),
            started_at=_parse_ts(data["started_at"]),
            finished_at=_parse_ts(data.get("finished_at")),
            stats=stats,
            error_text=data.get("error_text"),
        )
