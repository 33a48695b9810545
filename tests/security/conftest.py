"""HTTP test fixtures.

- Creates the FastAPI `app` with an injected in-memory pool (no Postgres)
- Wraps it in a TestClient that runs the lifespan and returns 500s instead of raising
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from formhook.config import Settings
from formhook.serve import create_app


@pytest.fixture()
def app(fake_pool):
    settings = Settings(database_url="postgresql://unused/test", table_name="submissions")
    return create_app(settings=settings, pool=fake_pool)


@pytest.fixture()
def client(app):
    """Unauthenticated TestClient (sender perspective)."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
