# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Storage layer: aiosqlite connection management and schema migrations."""

from regwatch.storage.database import close_db, get_db, init_db

__all__ = ["close_db", "get_db", "init_db"]
