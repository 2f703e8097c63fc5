"""
tests/conftest.py -- Shared test fixtures for UserPortal.

This module provides:
  - store:        a fresh in-memory AccountStore per test (unit tests)
  - api_client:   TestClient wired to an isolated store, with a client user
                  (alice) and an employee user (bob) and a token for each
  - FakeClock:    a settable clock for token and signature expiry tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixture because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment variables must be set before any project import so
get_settings() resolves the test secret and backend URL.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any auth/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SERVERLESS_SECRET_KEY", "test-serverless-shared-secret-0123456789abcdef")
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "backend.test", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from accounts.models import User
from accounts.store import AccountStore
from api.limiter import limiter
from api.main import app
from auth.tokens import get_token_authority, hash_password

TEST_SHARED_SECRET = os.environ["SERVERLESS_SECRET_KEY"]
TEST_BACKEND_URL = os.environ["BACKEND_URL"]


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class ApiContext:
    client: TestClient
    store: AccountStore
    client_id: int
    client_token: str
    employee_id: int
    employee_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def make_user(store: AccountStore, username: str, role: str, password: str = "correct-horse-1") -> User:
    """Create a user with a real bcrypt hash and return the stored record."""
    uid = store.create_user(
        User(
            username=username,
            email=f"{username}@userportal.io",
            roles={role},
            hashed_password=hash_password(password),
        )
    )
    return store.get_by_id(uid)


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _patch_lifespan(store: AccountStore):
    """Return a lifespan that wires the test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    One isolated named in-memory DB per test module, so modules never see
    each other's users or alerts.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(f"sqlite:///file:test_accounts_{suffix}?mode=memory&cache=shared&uri=true")

    alice = make_user(store, "alice", "client", password="alicepass123")
    bob = make_user(store, "bob", "employee", password="bobpass1234")
    authority = get_token_authority()

    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=store,
            client_id=alice.id,
            client_token=authority.issue(alice),
            employee_id=bob.id,
            employee_token=authority.issue(bob),
        )

    store.close()
