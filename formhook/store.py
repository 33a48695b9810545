"""Submission persistence: Postgres via a psycopg connection pool.

Security contract:
- Values are always bound parameters (%s), never interpolated
- The table name is composed with sql.Identifier (quoted), never formatted
- One connection is checked out per call and always returned to the pool
- A failed insert rolls back, so no partial row is ever left behind
"""

from __future__ import annotations

import logging

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from formhook.models import NormalizedSubmission, StoredRow, StoreError

logger = logging.getLogger(__name__)

_INSERT = sql.SQL(
    """INSERT INTO {table} (name, email, message, submitted_at)
       VALUES (%s, %s, %s, %s)
       RETURNING id, name, email, message, submitted_at"""
)

_SELECT_BY_ID = sql.SQL(
    """SELECT id, name, email, message, submitted_at
       FROM {table}
       WHERE id = %s"""
)


def build_pool(
    conninfo: str,
    *,
    min_size: int = 1,
    max_size: int = 10,
    timeout: float = 30.0,
    sslmode: str | None = None,
) -> ConnectionPool:
    """Create a closed pool; the caller opens it at startup and closes it at shutdown."""
    kwargs: dict = {"row_factory": dict_row}
    if sslmode:
        kwargs["sslmode"] = sslmode
    return ConnectionPool(
        conninfo,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
        kwargs=kwargs,
        open=False,
        name="formhook",
    )


class PersistenceGateway:
    """Writes validated submissions to the submissions table."""

    def __init__(self, pool: ConnectionPool, table: str = "submissions"):
        self._pool = pool
        self._table = sql.Identifier(table)

    def persist(self, record: NormalizedSubmission) -> StoredRow | StoreError:
        """Insert one submission and return the stored row, or a StoreError."""
        query = _INSERT.format(table=self._table)
        params = (record.name, record.email, record.message, record.submitted_at)
        try:
            with self._pool.connection() as conn:
                row = conn.execute(query, params).fetchone()
        except psycopg.Error as e:
            logger.warning("Submission insert failed: %s", e)
            return StoreError(message=str(e) or type(e).__name__)

        if row is None:
            return StoreError(message="Insert returned no row")
        stored = StoredRow.from_row(row)
        logger.info("Submission stored: id=%s", stored.id)
        return stored

    def fetch(self, row_id: int) -> StoredRow | None:
        """Read a stored submission back by id."""
        with self._pool.connection() as conn:
            row = conn.execute(_SELECT_BY_ID.format(table=self._table), (row_id,)).fetchone()
        return StoredRow.from_row(row) if row else None
