# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Enumerations and lifecycle constants."""

from enum import StrEnum


class DataType(StrEnum):
    RULES = "rules"
    EMISSIONS = "emissions"
    INSPECTIONS = "inspections"
    BULLETINS = "bulletins"
    FORMS = "forms"


class Depth(StrEnum):
    SUMMARY = "summary"
    FULL = "full"


class JobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


ACTIVE_JOB_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})
TERMINAL_JOB_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.SUCCESS, JobStatus.ERROR})

# Allowed status changes; terminal states have no exits.
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.ERROR}),
    JobStatus.RUNNING: frozenset({JobStatus.SUCCESS, JobStatus.ERROR}),
    JobStatus.SUCCESS: frozenset(),
    JobStatus.ERROR: frozenset(),
}

DEFAULT_CHECK_INTERVAL_SECONDS = 60.0
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 30.0
DEFAULT_UPCOMING_HOURS = 24
