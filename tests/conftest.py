"""
tests/conftest.py -- Shared test fixtures for Inkwell.

This module provides:
  - FakeMailer: records verification codes instead of sending them
  - db / mailer / components: isolated in-memory auth graph for unit tests
  - verified_user: factory fixture, signup + verify in one call
  - api: TestClient harness with the real app and a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API harness because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit-test fixtures stay on one thread and use :memory:.

DEBUG must be set before any auth/core import so get_settings() can
auto-generate SECRET_KEY instead of raising. BCRYPT_ROUNDS=4 keeps hashing
fast.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_components
from auth.service import AuthComponents, build_auth_components
from core.config import get_settings
from core.database import Database
from core.mailer import MailDeliveryError

TEST_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"
TEST_PASSWORD = "secret123!"

# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------


class FakeMailer:
    """Stands in for core.mailer.Mailer. Set fail=True to simulate an SMTP outage."""

    is_configured = True

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send_verification_code(self, recipient: str, display_name: str, code: str, valid_minutes: int) -> None:
        if self.fail:
            raise MailDeliveryError(f"refused: {recipient}")
        self.sent.append((recipient, code))

    def last_code_for(self, recipient: str) -> str:
        return [code for to, code in self.sent if to == recipient][-1]


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[Database, None, None]:
    database = Database("sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def components(db: Database, mailer: FakeMailer) -> AuthComponents:
    return build_auth_components(db, mailer, get_settings())


@pytest.fixture
def verified_user(components: AuthComponents, mailer: FakeMailer):
    """Factory: sign up and verify `email`, return the stored User."""

    def make(email: str, name: str = "Tester"):
        registered = components.service.signup(email, TEST_PASSWORD, name).value
        outcome = components.service.verify_email(registered.public_id, mailer.last_code_for(email))
        assert outcome.ok, outcome.error
        return components.users.get_by_public_id(registered.public_id)

    return make


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Limits are in-memory and shared by every TestClient; start each test clean."""
    limiter.reset()


# ---------------------------------------------------------------------------
# API harness -- one TestClient per test module
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    components: AuthComponents
    mailer: FakeMailer
    user_agent: str = TEST_USER_AGENT

    def auth_headers(self, token: str) -> dict[str, str]:
        """Bearer header plus the User-Agent the session was bound to at login."""
        return {"Authorization": f"Bearer {token}", "User-Agent": self.user_agent}

    def register_and_verify(self, email: str, name: str = "Tester") -> str:
        """Run register + verify over HTTP; return the user's public id."""
        resp = self.client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": TEST_PASSWORD, "display_name": name},
        )
        assert resp.status_code == 201, resp.text
        uid = resp.json()["uuid"]
        resp = self.client.post("/api/v1/auth/verify", json={"uuid": uid, "otp": self.mailer.last_code_for(email)})
        assert resp.status_code == 200, resp.text
        return uid

    def login(self, email: str) -> str:
        """Log in and return the access token. The cookie jar is left empty."""
        resp = self.client.post(
            "/api/v1/auth/login",
            json={"email": email, "password": TEST_PASSWORD},
            headers={"User-Agent": self.user_agent},
        )
        assert resp.status_code == 200, resp.text
        self.client.cookies.clear()
        return resp.json()["access_token"]


def _patch_lifespan(components: AuthComponents):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        attach_components(app, components)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiHarness, None, None]:
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    db = Database(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    fake_mailer = FakeMailer()
    components = build_auth_components(db, fake_mailer, get_settings())

    app.router.lifespan_context = _patch_lifespan(components)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield ApiHarness(client=client, components=components, mailer=fake_mailer)

    db.close()


@pytest.fixture
def api(api_client: ApiHarness) -> ApiHarness:
    """Per-test view of the module harness with an empty cookie jar and a working mailer."""
    api_client.client.cookies.clear()
    api_client.mailer.fail = False
    return api_client
