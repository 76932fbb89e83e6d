"""
tests/conftest.py -- Shared test fixtures for DocVault tests.

This module provides:
  - store / issuer: in-memory UserStore and a TokenIssuer for unit tests
  - api_client: TestClient with a seeded user and its bearer token

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

The DEBUG env var must be set before any api/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import UserStore
from auth.tokens import TokenIssuer, identity_snapshot
from tests.helpers import TEST_SECRET, make_user


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, expire_seconds=3600)


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, token_issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test collaborators into app.state so TestClient routes
    see an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.token_issuer = token_issuer
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The seeded user is tester@example.com / username "tester" / TEST_PASSWORD.
    Each test module gets its own named in-memory database.
    """
    suffix = request.module.__name__.replace(".", "_")
    user_store = UserStore(f"sqlite:///file:test_users_{suffix}?mode=memory&cache=shared&uri=true")
    token_issuer = TokenIssuer(TEST_SECRET, expire_seconds=3600)

    seeded = make_user(user_store, "tester@example.com", "tester")
    token = token_issuer.issue(identity_snapshot(seeded))

    app.router.lifespan_context = _patch_lifespan(user_store, token_issuer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, seeded.id

    user_store.close()
