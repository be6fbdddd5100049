# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Request ID propagation and access logging."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("regwatch.api.middleware")

# Probe endpoints are polled constantly; keep them out of the INFO log.
_QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/ready"})


class RequestMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and logs method, path, status and latency.

    A caller-supplied ``X-Request-ID`` is reused so a dispatch can be traced
    from an upstream service into the scheduler logs; otherwise a new one is
    generated.  The ID is exposed on ``request.state.request_id`` and echoed
    back in the response header.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            extra={"request_id": request_id},
        )
        return response
