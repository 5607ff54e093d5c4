"""
tests/conftest.py -- Shared test fixtures for SessionAuth.

This module provides:
  - settings / cache / user_store / registry / users_service / auth_service:
    unit-level collaborators over in-memory SQLite
  - api_client: TestClient over the real app with a patched lifespan
  - expiring_client: same, but every token is inside the refresh window

Design: the API fixtures put the user store in a file under tmp_path (not
:memory:) because TestClient runs sync route handlers in a thread pool and
SQLAlchemy hands each thread its own :memory: connection.

DEBUG and friends must be set before any api/ import: api/main.py reads
get_settings() at import time to configure middleware.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path

# CRITICAL: set before importing api/ so get_settings() succeeds and the
# TrustedHost / rate-limit middleware accept TestClient traffic.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.service import AuthService
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import TokenCodec
from cache.store import SQLiteCache
from core.config import Settings
from users.service import UsersService

TEST_SECRET = "test-secret-" + "x" * 40
TEST_API_KEY = "test-api-key-0123456789"


def make_settings(**overrides) -> Settings:
    values = {
        "session_secret": TEST_SECRET,
        "session_expiry": 3600,
        "refresh_expiry": 7200,
        "refresh_threshold": 300,
        "api_key": TEST_API_KEY,
        # bcrypt minimum; keeps the suite fast
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def cache() -> Generator[SQLiteCache, None, None]:
    c = SQLiteCache(":memory:")
    yield c
    c.close()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def registry(cache: SQLiteCache, settings: Settings) -> SessionRegistry:
    return SessionRegistry(cache, TokenCodec(settings.session_secret), settings)


@pytest.fixture
def users_service(user_store: UserStore) -> UsersService:
    return UsersService(user_store)


@pytest.fixture
def auth_service(registry: SessionRegistry, users_service: UsersService, settings: Settings) -> AuthService:
    return AuthService(registry, users_service, settings)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, cache: SQLiteCache, user_store: UserStore):
    """Return a lifespan that wires test stores into app.state instead of the real ones.

    purge_task is a long-sleeping real task so shutdown's .cancel() works.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, settings, cache, user_store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@contextmanager
def _running_client(settings: Settings, db_dir: Path) -> Generator[TestClient, None, None]:
    cache = SQLiteCache(":memory:")
    user_store = UserStore(f"sqlite:///{db_dir / 'test_users.db'}")
    app.router.lifespan_context = _patch_lifespan(settings, cache, user_store)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    cache.close()
    user_store.close()


@pytest.fixture
def api_client(tmp_path: Path) -> Generator[TestClient, None, None]:
    """TestClient over the real routes with fresh, isolated stores per test."""
    with _running_client(make_settings(), tmp_path) as client:
        yield client


@pytest.fixture
def expiring_client(tmp_path: Path) -> Generator[TestClient, None, None]:
    """TestClient whose session tokens live 60s -- always inside the 300s refresh window."""
    with _running_client(make_settings(session_expiry=60), tmp_path) as client:
        yield client

