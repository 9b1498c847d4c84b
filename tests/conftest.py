"""
tests/conftest.py -- Shared test fixtures for sessiongate.

This module provides:
  - FakeClock: a controllable UTC clock for refresh-token expiry
  - engine / users / refresh_tokens / codec / hasher / service: unit-level
    object graph on a private in-memory SQLite database
  - seeded_users: one active and one inactive user with known passwords
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

SECRET_KEY must be set before any api/ import: api.main reads settings at
import time and Settings refuses to build without a key.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any core/api import so get_settings() succeeds.
os.environ.setdefault("SECRET_KEY", "test-signing-key-0123456789abcdef0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
# TestClient sends Host: testserver; api.main builds TrustedHostMiddleware at import.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_auth
from auth.models import Profile, User
from auth.passwords import PasswordHasher
from auth.session import SessionService
from auth.store import RefreshTokenStore, UserStore, build_engine
from auth.tokens import AccessTokenCodec
from core.config import Settings

TEST_SECRET = os.environ["SECRET_KEY"]

ACTIVE_EMAIL = "a@x.com"
ACTIVE_PASSWORD = "secret1"
INACTIVE_EMAIL = "inactive@x.com"
INACTIVE_PASSWORD = "secret2"

# Counters are process-wide; login is called far more often than 10/minute here.
limiter.enabled = False


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-level object graph
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    # Rounds=4 is the bcrypt minimum; the dummy hash is computed once per session.
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    eng = build_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def refresh_tokens(engine, clock) -> RefreshTokenStore:
    return RefreshTokenStore(engine, expire_seconds=7 * 24 * 60 * 60, clock=clock)


@pytest.fixture
def codec() -> AccessTokenCodec:
    return AccessTokenCodec(TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def service(users, refresh_tokens, codec, hasher) -> SessionService:
    return SessionService(users, refresh_tokens, codec, hasher)


def _seed(store: UserStore, hasher: PasswordHasher) -> dict[str, str]:
    active_id = store.create_user(
        User(
            email=ACTIVE_EMAIL,
            name="Ana Active",
            password_hash=hasher.hash(ACTIVE_PASSWORD),
            profile=Profile.INVESTOR.value,
        )
    )
    inactive_id = store.create_user(
        User(
            email=INACTIVE_EMAIL,
            name="Ivo Inactive",
            password_hash=hasher.hash(INACTIVE_PASSWORD),
            profile=Profile.PARTNER.value,
            is_active=False,
        )
    )
    return {"active": active_id, "inactive": inactive_id}


@pytest.fixture
def seeded_users(users, hasher) -> dict[str, str]:
    """Return {"active": id, "inactive": id} for the two seeded accounts."""
    return _seed(users, hasher)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, settings: Settings):
    """Return a lifespan that wires the test engine into app.state.

    Uses the same attach_auth() as production so route handlers see the
    real object graph, only pointed at an isolated in-memory database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_auth(app, engine, settings)
        app.state.purge_task = None
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, dict[str, str]], None, None]:
    """Yield (client, user_ids) for API integration tests.

    Each test module gets its own named in-memory database so state written by
    one module (refresh tokens, deactivated users) never leaks into another.
    """
    db_name = request.module.__name__.replace(".", "_")
    engine = build_engine(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    settings = Settings(secret_key=TEST_SECRET, bcrypt_rounds=4)
    user_ids = _seed(UserStore(engine), PasswordHasher(rounds=4))

    app.router.lifespan_context = _patch_lifespan(engine, settings)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_ids

    engine.dispose()
