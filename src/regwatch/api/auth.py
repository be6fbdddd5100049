# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""API key check shared by every research endpoint."""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from regwatch.core.config import get_settings

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _matches_any(candidate: str, keys: list[str]) -> bool:
    # Compare against every key so timing does not reveal which one matched.
    matched = False
    for key in keys:
        matched |= hmac.compare_digest(candidate.encode(), key.encode())
    return matched


async def require_api_key(
    api_key: str | None = Security(_api_key_header),
) -> str:
    """Enforce ``REGWATCH_API_KEYS`` when it is set.

    With no keys configured the API is open and callers are reported as
    ``"anonymous"``.  A missing header is 401, an unknown key 403.
    """
    keys = get_settings().api_keys
    if not keys:
        return "anonymous"

    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key header")
    if not _matches_any(api_key, keys):
        raise HTTPException(status_code=403, detail="Invalid API key")
    return api_key
