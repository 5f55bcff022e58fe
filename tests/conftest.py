"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - make_test_settings(): Settings pointing at an isolated in-memory DB
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_env: (client, services) for API integration tests
  - issue_token(): mint an access token with any role / permission string
  - engine / user_store / permission_store: in-memory stores for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import Services, app, attach_services, build_services
from auth.models import UserRole
from auth.tokens import TokenMaker
from core.config import Settings
from core.database import create_db_engine
from identity.models import User
from identity.store import PermissionStore, UserStore
from identity.transform import from_register_request

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"


def make_test_settings(db_suffix: str, **overrides) -> Settings:
    """Settings bound to a named shared-memory DB unique to db_suffix."""
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "database_url": f"sqlite:///file:test_authcore_{db_suffix}?mode=memory&cache=shared&uri=true",
    }
    values.update(overrides)
    return Settings(**values)


def _patch_lifespan(settings: Settings, services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built services into app.state so TestClient routes see the
    isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, settings, services)
        yield

    return test_lifespan


def issue_token(
    maker: TokenMaker,
    user_id: int | str,
    username: str,
    permission: str = "",
    role: str = UserRole.USER.value,
    duration: int = 60 * 60 * 1000,
) -> str:
    token, _ = maker.create_token(
        user_id=str(user_id),
        username=username,
        permission=permission,
        role=role,
        duration=duration,
        instance_id="test-instance",
        role_id=role,
    )
    return token


def create_user(store: UserStore, email: str, password: str = "correct-horse-9", **fields) -> User:
    """Register-equivalent insert: validated, password hashed."""
    data = {
        "fullname": fields.pop("fullname", "Test User"),
        "username": fields.pop("username", email.split("@")[0]),
        "email": email,
        "phone_number": fields.pop("phone_number", "+15550100"),
        "password": password,
    }
    user = from_register_request(data).data
    for name, value in fields.items():
        setattr(user, name, value)
    result = store.create(user)
    assert result.ok, result.error
    return result.data


# ---------------------------------------------------------------------------
# Unit-test fixtures -- one private in-memory DB per test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def permission_store(engine) -> PermissionStore:
    return PermissionStore(engine)


@pytest.fixture
def maker() -> TokenMaker:
    return TokenMaker(TEST_SECRET)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_env(request) -> Generator[tuple[TestClient, Services], None, None]:
    """Yield (client, services) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers while using an
    isolated in-memory database named after the test module.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    settings = make_test_settings(suffix)
    services = build_services(settings)

    app.router.lifespan_context = _patch_lifespan(settings, services)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, services

    services.engine.dispose()
