"""Shared fixtures for the formhook test suite."""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from formhook.webhooks.extraction import FieldExtractor

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, row: dict[str, Any] | None):
        self._row = row

    def fetchone(self) -> dict[str, Any] | None:
        return self._row


class FakeConnection:
    """Buffers inserted rows until the pool commits them."""

    def __init__(self, pool: FakePool):
        self._pool = pool
        self.pending: list[dict[str, Any]] = []

    def execute(self, query: Any, params: tuple = ()) -> FakeCursor:
        self._pool.executed.append((query, params))
        if self._pool.fail_with is not None:
            raise self._pool.fail_with
        if len(params) == 4:
            name, email, message, submitted_at = params
            row = {
                "id": next(self._pool.ids),
                "name": name,
                "email": email,
                "message": message,
                "submitted_at": submitted_at,
            }
            self.pending.append(row)
            return FakeCursor(dict(row))
        (row_id,) = params
        match = next((r for r in self._pool.rows if r["id"] == row_id), None)
        return FakeCursor(dict(match) if match else None)


class FakePool:
    """In-memory stand-in for psycopg_pool.ConnectionPool.

    Commits on a clean exit from connection(), discards on error, and counts
    checkouts and returns.
    """

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.executed: list[tuple[Any, tuple]] = []
        self.fail_with: Exception | None = None
        self.ids = itertools.count(1)
        self.checkouts = 0
        self.returned = 0

    @contextmanager
    def connection(self):
        conn = FakeConnection(self)
        self.checkouts += 1
        try:
            yield conn
            self.rows.extend(conn.pending)
        finally:
            self.returned += 1


@pytest.fixture()
def repo_root() -> Path:
    """Return the repository root directory."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture()
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def extractor() -> FieldExtractor:
    """Extractor with a frozen clock."""
    return FieldExtractor(clock=lambda: FIXED_NOW)
