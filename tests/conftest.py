"""
tests/conftest.py -- Shared test fixtures for TaskGate unit and integration tests.

This module provides:
  - FakeClock / clock: a controllable time source injected into every service
  - services: the full service graph on private in-memory SQLite databases
  - register: helper that creates a principal through AccountService
  - api_client: TestClient over the real app with a patched lifespan
  - api_login: helper that logs in over HTTP and returns the token payload

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process. Unit fixtures run in one thread
and can use plain :memory:.

The DEBUG env var must be set before any import that reaches get_settings()
so the development signing keys are used instead of raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() falls back
# to the development signing keys instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_services
from api.services import Services, build_services
from auth.models import PublicPrincipal
from core.config import Settings

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when advance() is called."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(debug=True)


# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------


@pytest.fixture
def services(settings: Settings, clock: FakeClock) -> Generator[Services, None, None]:
    """Every service wired over fresh in-memory databases, system roles seeded."""
    svc = build_services(
        settings,
        clock,
        auth_db_url="sqlite:///:memory:",
        projects_db_url="sqlite:///:memory:",
    )
    svc.access.ensure_system_roles()
    yield svc
    svc.close()


@pytest.fixture
def register(services: Services) -> Callable[..., PublicPrincipal]:
    """Return a helper that registers a principal and returns its public view."""

    def _register(username: str, password: str = "correct-horse-1", email: str | None = None) -> PublicPrincipal:
        result = services.accounts.register(
            username=username,
            email=email or f"{username}@example.com",
            password=password,
        )
        assert isinstance(result, PublicPrincipal), result
        return result

    return _register


# ---------------------------------------------------------------------------
# API integration
# ---------------------------------------------------------------------------

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass-123"


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see
    isolated test DBs rather than the production databases.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, services)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Each test starts with empty slowapi counters; TestClient shares one client IP."""
    limiter.reset()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, Services, FakeClock], None, None]:
    """Yield (client, services, clock) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. The first
    principal (admin@example.com) is registered before the client starts and
    therefore holds the Administrator role.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    clock = FakeClock()
    services = build_services(
        Settings(debug=True),
        clock,
        auth_db_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true",
        projects_db_url=f"sqlite:///file:test_projects_{suffix}?mode=memory&cache=shared&uri=true",
    )
    services.access.ensure_system_roles()
    services.accounts.register(username="admin", email=ADMIN_EMAIL, password=ADMIN_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, services, clock

    services.close()


@pytest.fixture
def api_login(api_client) -> Callable[..., dict]:
    """Return a helper: log in over HTTP and return the token pair as a dict."""
    client, _services, _clock = api_client

    def _login(email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD, totp_code: str | None = None) -> dict:
        body = {"email": email, "password": password}
        if totp_code is not None:
            body["totp_code"] = totp_code
        resp = client.post("/api/v1/auth/login", json=body)
        assert resp.status_code == 200, resp.text
        return resp.json()["tokens"]

    return _login


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    return bearer
