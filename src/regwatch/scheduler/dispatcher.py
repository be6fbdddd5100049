# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""JobDispatcher: hands a work signature to the work executor."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Protocol

from regwatch.core.constants import DEFAULT_DISPATCH_TIMEOUT_SECONDS, DataType, Depth
from regwatch.core.exceptions import DispatchError, DuplicateJobError, ValidationError
from regwatch.models.requests import ResearchRequest
from regwatch.scheduler.guard import DuplicateGuard
from regwatch.scheduler.jobs import normalize_data_types, normalize_states

logger = logging.getLogger("regwatch.scheduler.dispatcher")

_KNOWN_DATA_TYPES = frozenset(d.value for d in DataType)


class WorkExecutor(Protocol):
    """Anything that can accept research work and report the job ids it created.

    Returned jobs must already be persisted in the ``queued`` state; from
    then on the executor alone advances their status.
    """

    async def start_work(
        self,
        states: list[str],
        data_types: list[str],
        depth: Depth,
        since: datetime | None = None,
    ) -> list[str]: ...


class JobDispatcher:
    """Validates a work signature and starts it on the executor.

    The executor call is bounded by *timeout* so a hung executor cannot
    stall a scheduler tick.
    """

    def __init__(
        self,
        executor: WorkExecutor,
        *,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._executor = executor
        self._timeout = timeout

    @property
    def executor(self) -> WorkExecutor:
        return self._executor

    async def dispatch(
        self,
        states: list[str],
        data_types: list[str],
        depth: Depth | str = Depth.SUMMARY,
        since: datetime | None = None,
    ) -> list[str]:
        """Start work for (states, data_types, depth) and return the new job ids.

        Raises:
            ValidationError: empty or unknown states, data types or depth.
            DispatchError: the executor failed, rejected the work or timed out.
        """
        clean_states = normalize_states(states)
        clean_types = normalize_data_types(data_types)
        if not clean_states:
            raise ValidationError("At least one state is required")
        if not clean_types:
            raise ValidationError("At least one data type is required")
        unknown = [d for d in clean_types if d not in _KNOWN_DATA_TYPES]
        if unknown:
            raise ValidationError(f"Unknown data types: {', '.join(unknown)}")
        try:
            depth = Depth(depth)
        except ValueError as exc:
            raise ValidationError(f"Unknown depth: {depth!r}") from exc

        try:
            job_ids = await asyncio.wait_for(
                self._executor.start_work(clean_states, clean_types, depth, since),
                timeout=self._timeout,
            )
        except DispatchError:
            raise
        except TimeoutError as exc:
            msg = f"Work executor did not accept work within {self._timeout}s"
            raise DispatchError(msg) from exc
        except Exception as exc:
            raise DispatchError(f"Work executor failed: {exc}") from exc

        logger.info(
            "Dispatched %s research for states=%s data_types=%s -> %d job(s)",
            depth, ",".join(clean_states), ",".join(clean_types), len(job_ids),
        )
        return list(job_ids)


async def start_research(
    dispatcher: JobDispatcher,
    guard: DuplicateGuard,
    request: ResearchRequest,
) -> list[str]:
    """Manual dispatch path: refuse work that is already queued or running."""
    states = [str(s) for s in request.states]
    data_types = [str(d) for d in request.data_types]
    if await guard.has_equivalent_active_job(states, data_types):
        raise DuplicateJobError(states, data_types)
    return await dispatcher.dispatch(states, data_types, request.depth, request.since)
