# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""DuplicateGuard: keeps equivalent research work from running twice at once."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from regwatch.scheduler.store import JobStore

logger = logging.getLogger("regwatch.scheduler.guard")


class DuplicateGuard:
    """Checks the job store for queued or running work with the same signature.

    Two signatures are equivalent only when their state sets and their
    data-type sets are exactly equal (order and case ignored).  A subset
    or superset is *not* a duplicate.

    *refresh* is awaited before each check; the HTTP executor uses it to
    pull remote job status into the store.
    """

    def __init__(
        self,
        job_store: JobStore,
        *,
        refresh: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._job_store = job_store
        self._refresh = refresh

    async def has_equivalent_active_job(
        self, states: list[str], data_types: list[str]
    ) -> bool:
        """Return True if equivalent work is queued or running.

        If the job store cannot be queried the guard fails open: the error
        is logged and False is returned so dispatch is never blocked
        indefinitely by a storage outage.  A failed refresh only means the
        stored status is used as is.
        """
        if self._refresh is not None:
            try:
                await self._refresh()
            except Exception:
                logger.exception("Could not refresh job status; using stored status")

        try:
            matches = await self._job_store.find_equivalent_active(states, data_types)
        except Exception:
            logger.exception(
                "Duplicate check failed for states=%s data_types=%s; allowing dispatch",
                ",".join(states), ",".join(data_types),
            )
            return False

        if matches:
            logger.info(
                "Found %d active job(s) equivalent to states=%s data_types=%s: %s",
                len(matches), ",".join(states), ",".join(data_types),
                ",".join(j.job_id for j in matches),
            )
        return bool(matches)
