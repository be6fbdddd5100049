# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Logging setup for the API, the scheduler loop and the CLI.

Records can carry ``request_id``, ``schedule_id`` and ``job_id`` through
``extra=``; the JSON formatter lifts them into top-level keys so a single
schedule's history can be followed across ticks.  Credentials that leak
into messages (worker bearer tokens, API keys) are masked by both formats.
"""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

REDACT_PATTERNS = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9\-._~+/]{6})[a-zA-Z0-9\-._~+/]*"),
    re.compile(r"(X-API-Key[\"']?\s*[:=]\s*[\"']?[a-zA-Z0-9]{4})[a-zA-Z0-9\-_]*", re.IGNORECASE),
    re.compile(r"((?:api_key|token)=[a-zA-Z0-9]{4})[a-zA-Z0-9\-_]*"),
]

CONTEXT_FIELDS = ("request_id", "schedule_id", "job_id")


def redact_sensitive(text: str) -> str:
    for pattern in REDACT_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_sensitive(record.getMessage()),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = redact_sensitive(str(exc))
            entry["exception_type"] = type(exc).__name__
        return json.dumps(entry)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact_sensitive(super().format(record))


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Attach a single stderr handler to the ``regwatch`` logger.

    Calling it again replaces the handler, so the CLI and the API lifespan
    can both call it safely.
    """
    root = logging.getLogger("regwatch")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            TextFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root.addHandler(handler)
