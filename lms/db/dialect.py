"""Dialect-specific INSERT constructs.

Every conflict-resolving write in the repos (insert-or-ignore, upsert)
goes through ``insert_for`` so the same statement runs on PostgreSQL in
production and on SQLite in dev/tests.  Both dialects expose
``on_conflict_do_nothing`` / ``on_conflict_do_update`` / ``excluded``
with the same signature.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession, table: Any) -> Any:
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"unsupported database dialect for upserts: {dialect}")
