"""Conflict-tolerant INSERT for the dialects we deploy on (SQLite, PostgreSQL)."""

from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.db.base import Base


async def insert_ignoring_conflicts(
    db: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """INSERT … ON CONFLICT DO NOTHING. Returns True when a row was inserted."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model)
    else:
        raise NotImplementedError(f"insert_ignoring_conflicts: unsupported dialect {dialect!r}")

    result = await db.execute(
        stmt.values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    )
    return result.rowcount == 1
