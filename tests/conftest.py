"""
tests/conftest.py -- Shared test fixtures for AuthCore.

This module provides:
  - hasher: PasswordHasher at the minimum bcrypt cost, shared per session
  - clock: a FixedClock each test can move forward
  - codec / service: TokenCodec + AuthService over in-memory stores
  - sql_service: the same engine over SQLAlchemy stores on in-memory SQLite
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for api_client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG must be set before any settings are read so get_settings() can
auto-generate signing secrets instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set DEBUG before any core/config import so get_settings() can auto-generate
# signing secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.memory import MemorySessionStore, MemoryUserStore
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenCodec
from core.clock import FixedClock

ACCESS_SECRET = "a" * 16 + "access-secret-for-tests-only"
REFRESH_SECRET = "r" * 16 + "refresh-secret-for-tests-only"


# ---------------------------------------------------------------------------
# Engine building blocks
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """bcrypt at cost 4 -- the minimum. Production default is 12."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def codec(clock: FixedClock) -> TokenCodec:
    return TokenCodec(ACCESS_SECRET, REFRESH_SECRET, clock=clock)


@pytest.fixture
def user_store(clock: FixedClock) -> MemoryUserStore:
    return MemoryUserStore(clock=clock)


@pytest.fixture
def session_store(clock: FixedClock) -> MemorySessionStore:
    return MemorySessionStore(clock=clock)


@pytest.fixture
def service(
    user_store: MemoryUserStore,
    session_store: MemorySessionStore,
    hasher: PasswordHasher,
    codec: TokenCodec,
) -> AuthService:
    """AuthService over in-memory stores and a FixedClock."""
    return AuthService(user_store, session_store, hasher, codec)


@pytest.fixture
def sql_service(clock: FixedClock, hasher: PasswordHasher, codec: TokenCodec) -> Generator[AuthService, None, None]:
    """AuthService over the SQLAlchemy stores on in-memory SQLite."""
    users = UserStore("sqlite:///:memory:", clock=clock)
    sessions = SessionStore("sqlite:///:memory:", clock=clock)
    yield AuthService(users, sessions, hasher, codec)
    users.close()
    sessions.close()


# ---------------------------------------------------------------------------
# HTTP adapter
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built engine into app.state so TestClient routes use isolated
    test stores rather than the configured database. No purge task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = service.users
        app.state.session_store = service.sessions
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(hasher: PasswordHasher) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan, so tests
    hit real route handlers, dependencies and exception handlers but use
    isolated shared-memory SQLite stores. Rate limiting is switched off so
    repeated logins across tests never trip a 429.
    """
    db_url = "sqlite:///file:test_authcore_api?mode=memory&cache=shared&uri=true"
    users = UserStore(db_url)
    sessions = SessionStore(db_url)
    service = AuthService(users, sessions, hasher, TokenCodec(ACCESS_SECRET, REFRESH_SECRET))

    app.router.lifespan_context = _patch_lifespan(service)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service

    limiter.enabled = True
    users.close()
    sessions.close()
