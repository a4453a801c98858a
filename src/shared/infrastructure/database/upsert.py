"""
Dialect-aware INSERT ... ON CONFLICT.

Postgres and SQLite both spell it the same way, but SQLAlchemy keeps the
construct in each dialect's module.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession, model: Any):
    """Return an INSERT for `model` that supports `on_conflict_do_*` on the session's dialect."""
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Unsupported database dialect: {dialect}")
