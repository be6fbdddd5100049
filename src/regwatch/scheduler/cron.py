# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Cron expression evaluator.

Supports standard 5-field cron expressions:
    minute hour day month weekday

Each field supports:
    *           any value
    N           specific value (e.g. 5)
    N,M         list of values (e.g. 1,15)
    N-M         range of values (e.g. 1-5)
    */N         step values (e.g. */15)
    N-M/S       stepped range (e.g. 0-30/10)
    N/S         stepped from N to the field maximum

Weekday accepts 0-7 where both 0 and 7 mean Sunday.  When day-of-month
and weekday are both restricted (neither starts with ``*``) a day matches
if *either* field matches, as in POSIX cron.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from regwatch.core.exceptions import ParseError

# Long enough to reach the next Feb 29 across a skipped century leap year.
_MAX_SEARCH_YEARS = 8

# Reference instant used to check that an expression can fire at all.
_VALIDATION_REFERENCE = datetime(2000, 1, 1, tzinfo=UTC)


class CronParseError(ParseError):
    """Raised when a cron expression is invalid."""


@dataclass(frozen=True, slots=True)
class CronSchedule:
    """Parsed value sets for the five cron fields (weekday 0=Sunday)."""

    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool = False
    weekday_restricted: bool = False

    def matches_day(self, moment: datetime) -> bool:
        day_ok = moment.day in self.days
        weekday_ok = _cron_weekday(moment) in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok


def _parse_int(text: str, part: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise CronParseError(f"Invalid value: {part}") from exc


def _parse_field(field: str, min_val: int, max_val: int) -> set[int]:
    """Parse a single cron field into a set of matching integer values."""
    values: set[int] = set()

    for part in field.split(","):
        part = part.strip()
        if not part:
            raise CronParseError(f"Invalid value: empty list item in {field!r}")

        base, _, step_text = part.partition("/")
        step = 1
        if step_text or part.endswith("/"):
            try:
                step = int(step_text)
            except ValueError as exc:
                raise CronParseError(f"Invalid step value: {part}") from exc
            if step <= 0:
                raise CronParseError(f"Step must be positive: {part}")

        if base == "*":
            lo_val, hi_val = min_val, max_val
        elif "-" in base:
            lo, hi = base.split("-", 1)
            try:
                lo_val, hi_val = int(lo), int(hi)
            except ValueError as exc:
                raise CronParseError(f"Invalid range: {part}") from exc
            if lo_val < min_val or hi_val > max_val or lo_val > hi_val:
                raise CronParseError(
                    f"Range {part} out of bounds ({min_val}-{max_val})"
                )
        else:
            lo_val = _parse_int(base, part)
            if lo_val < min_val or lo_val > max_val:
                raise CronParseError(
                    f"Value {lo_val} out of bounds ({min_val}-{max_val})"
                )
            # "N/S" runs to the end of the field; a bare "N" is a single value
            hi_val = max_val if step_text else lo_val

        values.update(range(lo_val, hi_val + 1, step))

    return values


def parse_cron(expression: str) -> CronSchedule:
    """Parse a 5-field cron expression into a :class:`CronSchedule`.

    Raises:
        CronParseError: If the expression is malformed.
    """
    if not isinstance(expression, str):
        raise CronParseError(f"Cron expression must be a string, got {type(expression).__name__}")

    parts = expression.strip().split()
    if len(parts) != 5:
        raise CronParseError(
            f"Cron expression must have exactly 5 fields, got {len(parts)}: {expression!r}"
        )

    weekdays = _parse_field(parts[4], 0, 7)
    if 7 in weekdays:
        weekdays.discard(7)
        weekdays.add(0)

    return CronSchedule(
        minutes=frozenset(_parse_field(parts[0], 0, 59)),
        hours=frozenset(_parse_field(parts[1], 0, 23)),
        days=frozenset(_parse_field(parts[2], 1, 31)),
        months=frozenset(_parse_field(parts[3], 1, 12)),
        weekdays=frozenset(weekdays),
        day_restricted=not parts[2].startswith("*"),
        weekday_restricted=not parts[4].startswith("*"),
    )


def next_run_from_cron(expression: str, after: datetime) -> datetime:
    """Return the earliest fire time of *expression* strictly after *after*.

    Naive datetimes are treated as UTC.  The result keeps the timezone of
    *after*.  Raises CronParseError for malformed expressions and for
    expressions that never fire (e.g. ``0 0 31 2 *``).
    """
    schedule = parse_cron(expression)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    return _next_after(schedule, after, expression)


def _next_after(schedule: CronSchedule, after: datetime, expression: str) -> datetime:
    # Start from the next minute boundary so the result is strictly later
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    last_year = candidate.year + _MAX_SEARCH_YEARS

    while candidate.year <= last_year:
        if candidate.month not in schedule.months:
            candidate = _start_of_next_month(candidate)
            continue
        if not schedule.matches_day(candidate):
            candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
            continue
        if candidate.hour not in schedule.hours:
            candidate = (candidate + timedelta(hours=1)).replace(minute=0)
            continue
        if candidate.minute not in schedule.minutes:
            candidate += timedelta(minutes=1)
            continue
        return candidate

    raise CronParseError(
        f"Could not find next run for cron expression: {expression!r}"
    )


def next_runs(expression: str, after: datetime, count: int) -> list[datetime]:
    """Return the next *count* fire times after *after*, ascending."""
    schedule = parse_cron(expression)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    runs: list[datetime] = []
    cursor = after
    for _ in range(count):
        cursor = _next_after(schedule, cursor, expression)
        runs.append(cursor)
    return runs


def validate_cron(expression: str) -> str:
    """Return the normalised expression, or raise CronParseError.

    Rejects both syntax errors and expressions that can never fire.
    """
    next_run_from_cron(expression, _VALIDATION_REFERENCE)
    return " ".join(expression.split())


def describe_cron(expression: str, after: datetime, count: int = 3) -> str:
    """Human-readable summary listing the next few fire times."""
    runs = next_runs(expression, after, count)
    return "Next runs: " + ", ".join(r.strftime("%Y-%m-%d %H:%M %Z").strip() for r in runs)


def _start_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return moment.replace(year=moment.year + 1, month=1, day=1, hour=0, minute=0)
    return moment.replace(month=moment.month + 1, day=1, hour=0, minute=0)


def _cron_weekday(moment: datetime) -> int:
    """Python weekday (0=Mon) to cron weekday (0=Sun)."""
    return (moment.weekday() + 1) % 7
