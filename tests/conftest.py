"""
tests/conftest.py -- Shared test fixtures for PropertyDesk.

This module provides:
  - engine / file_engine: isolated databases for store-level unit tests
  - FakeClock: a settable clock injected into TokenService and VerificationCodeStore
  - RecordingDelivery: captures verification codes instead of sending them
  - api: a TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API fixture because TestClient runs sync dependencies in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Tests that race real threads against one store use a
temp file instead, so SQLite's own write locking is what serializes them.

DEBUG, BCRYPT_ROUNDS and RATE_LIMIT_ENABLED must be set before any api/auth
import so get_settings() sees them on its first (cached) call.
"""

from __future__ import annotations

import os

# CRITICAL: Set before any core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import asyncio
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.db import create_auth_engine
from core.config import get_settings

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock returning a settable epoch-seconds value."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class RecordingDelivery:
    sent: list[tuple[str, str]] = field(default_factory=list)

    def deliver(self, email: str, code: str) -> None:
        self.sent.append((email, code))

    def last_code_for(self, email: str) -> str:
        return [c for e, c in self.sent if e == email][-1]


# ---------------------------------------------------------------------------
# Store-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_auth_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    eng = create_auth_engine(f"sqlite:///{tmp_path / 'auth.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    delivery: RecordingDelivery

    @property
    def state(self):
        return self.client.app.state

    def signup(self, email: str, password: str = "Secret123", **profile) -> dict:
        resp = self.client.post("/api/v1/auth/signup", json={"email": email, "password": password, **profile})
        assert resp.status_code == 201, resp.text
        self.client.cookies.clear()
        return resp.json()

    def bearer(self, token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(db_url: str, delivery: RecordingDelivery):
    """Return a lifespan that wires isolated stores into app.state.

    Uses the real wire_services() so routes see exactly the object graph
    production builds, minus bootstrap and the purge task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        engine = create_auth_engine(db_url)
        wire_services(app, get_settings(), engine)
        app.state.code_delivery = delivery
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        app.state.hasher.close()
        engine.dispose()

    return test_lifespan


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness over a fresh shared-memory database.

    base_url uses localhost so TrustedHostMiddleware accepts the requests.
    signup() clears the cookie jar so tests pass tokens explicitly.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    delivery = RecordingDelivery()
    app.router.lifespan_context = _patch_lifespan(db_url, delivery)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, delivery=delivery)
