"""Dialect-aware INSERT for ON CONFLICT statements.

PostgreSQL and SQLite both support ``INSERT ... ON CONFLICT`` and
``RETURNING`` but SQLAlchemy exposes them through dialect-specific
``insert`` constructs.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model: Any) -> Any:
    """Return an ``insert`` construct with ``on_conflict_*`` for the session's dialect."""
    bind = db.get_bind()
    if bind.dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
