"""
tests/conftest.py -- Shared test fixtures for PhotoAuth.

This module provides:
  - FrozenClock / clock: a hand-driven Clock so expiry tests never sleep
  - CapturingSender / sender: records every OTP instead of sending it
  - user_store, identities, issuer, challenges, service: unit-level components
  - api: TestClient over the real app with a patched lifespan and an admin account

Stores use a SQLite file under pytest's tmp_path rather than :memory:.
TestClient runs sync route handlers in a thread pool and the concurrency tests
start their own threads; a file database gives every thread a real connection
with normal locking, where shared-cache memory databases raise "table is
locked" instead of waiting.

DEBUG, SECRET_KEY, RATE_LIMIT_ENABLED and ALLOWED_HOSTS must be set before
any api/ or core/ import, because get_settings() is read at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

# CRITICAL: set before importing anything that calls get_settings().
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ALLOWED_HOSTS"] = '["*"]'

import pytest
from fastapi.testclient import TestClient

from api.main import app, attach_auth_state, build_auth_service
from auth.challenges import ChallengeStore
from auth.identity import IdentityResolver
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import SessionIssuer, TokenConfig
from core.config import get_settings

TEST_SECRET = "unit-test-secret-key-with-at-least-32-chars"
START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FrozenClock:
    """Clock that only moves when a test calls advance()."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


@dataclass
class CapturingSender:
    sent: list[tuple[str, str]] = field(default_factory=list)

    def send(self, phone: str, code: str) -> None:
        self.sent.append((phone, code))

    def last_code(self, phone: str) -> Optional[str]:
        for sent_phone, code in reversed(self.sent):
            if sent_phone == phone:
                return code
        return None


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sender() -> CapturingSender:
    return CapturingSender()


@pytest.fixture
def user_store(tmp_path) -> Generator[UserStore, None, None]:
    store = UserStore(f"sqlite:///{tmp_path / 'users.db'}")
    yield store
    store.close()


@pytest.fixture
def identities(user_store: UserStore) -> IdentityResolver:
    return IdentityResolver(user_store)


@pytest.fixture
def issuer(clock: FrozenClock) -> SessionIssuer:
    return SessionIssuer(TokenConfig(secret_key=TEST_SECRET), clock)


@pytest.fixture
def challenges(clock: FrozenClock) -> ChallengeStore:
    return ChallengeStore(clock=clock)


@pytest.fixture
def service(
    challenges: ChallengeStore,
    identities: IdentityResolver,
    issuer: SessionIssuer,
    sender: CapturingSender,
) -> AuthService:
    return AuthService(challenges, identities, issuer, sender)


# ---------------------------------------------------------------------------
# HTTP fixture
# ---------------------------------------------------------------------------

ADMIN_USERNAME = "rootadmin"
ADMIN_PASSWORD = "adminpass123"
ADMIN_SECOND_FACTOR = "2006"


@dataclass
class ApiContext:
    client: TestClient
    service: AuthService
    sender: CapturingSender
    clock: FrozenClock
    admin: User
    admin_token: str
    admin_password: str = ADMIN_PASSWORD

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(user_store: UserStore, service: AuthService):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        attach_auth_state(app, user_store, service)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api(tmp_path_factory) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for HTTP integration tests.

    One client per test module. The clock is frozen and never advanced here;
    tests needing an expired token mint one with a separate issuer.
    """
    db_path = tmp_path_factory.mktemp("api") / "users.db"
    user_store = UserStore(f"sqlite:///{db_path}")
    clock = FrozenClock()
    sender = CapturingSender()
    service = build_auth_service(get_settings(), user_store, clock, sender)

    admin = service.ensure_admin(ADMIN_USERNAME, ADMIN_PASSWORD, ADMIN_SECOND_FACTOR)
    admin_token = service.issuer.issue(admin)

    app.router.lifespan_context = _patch_lifespan(user_store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client, service, sender, clock, admin, admin_token)

    user_store.close()
