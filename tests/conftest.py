"""
tests/conftest.py -- Shared test fixtures for DocDesk integration tests.

This module provides:
  - FakeClock: a hand-advanced time source for TTL and cooldown paths
  - RecordingNotifier: captures outgoing OTP emails instead of calling Mailjet
  - _make_test_store(): creates an isolated in-memory credential DB
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - harness: TestClient plus the service, store, notifier and clock behind it

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The harness is function-scoped: OTP and verification-token ledgers are
stateful, and a fresh service per test keeps cooldowns from leaking between
tests.

The DEBUG env var must be set before any core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import itertools
import os
import re
import time
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set env before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ADMIN_ALLOW_LIST", "admin@example.com,ops@example.com")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.errors import DeliveryError
from auth.models import ROLE_ADMIN, ROLE_USER, Credential
from auth.service import AccountService, build_account_service
from auth.store import CredentialStore
from auth.tokens import hash_password
from core.config import Settings

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"
USER_EMAIL = "user@example.com"
USER_PASSWORD = "userpass123"
USER_MOBILE = "9876543210"

_CODE_RE = re.compile(r">\s*(\d{6})\s*<")
_db_counter = itertools.count()

# Per-IP limits are covered by slowapi's own tests; they would only make the
# suite order-dependent here.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Starts at the real current time so JWT exp checks inside jose still pass."""

    def __init__(self, start: float | None = None) -> None:
        self.current = time.time() if start is None else start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, recipient_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError("Email sending failed.")
        self.sent.append((recipient_email, subject, body))

    def last_code(self, email: str) -> str:
        """Return the code from the most recent email sent to email."""
        for recipient, _subject, body in reversed(self.sent):
            if recipient == email:
                match = _CODE_RE.search(body)
                assert match, "no 6-digit code in email body"
                return match.group(1)
        raise AssertionError(f"no email sent to {email}")


def wrong_code(code: str) -> str:
    """A valid-looking 6-digit code guaranteed to differ from code."""
    return "100000" if code != "100000" else "100001"


# ---------------------------------------------------------------------------
# Store / settings helpers
# ---------------------------------------------------------------------------


def _make_test_store(name: str) -> CredentialStore:
    """Create an isolated named shared-memory SQLite store."""
    return CredentialStore(db_url=f"sqlite:///file:test_{name}_{next(_db_counter)}?mode=memory&cache=shared&uri=true")


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": "test-secret-key-" + "x" * 32,
        "admin_allow_list": "admin@example.com,ops@example.com",
    }
    values.update(overrides)
    return Settings(**values)


def _patch_lifespan(accounts: AccountService, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.store = accounts.store
        app.state.accounts = accounts
        app.state.guard = accounts.guard
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Harness
# ---------------------------------------------------------------------------


@dataclass
class Harness:
    client: TestClient
    accounts: AccountService
    store: CredentialStore
    notifier: RecordingNotifier
    clock: FakeClock
    settings: Settings

    def create_user(
        self,
        email: str = USER_EMAIL,
        password: str = USER_PASSWORD,
        mobile: str | None = USER_MOBILE,
        **fields,
    ) -> Credential:
        profile = Credential(
            email=email,
            role=ROLE_USER,
            mobile_number=mobile,
            password_hash=hash_password(password),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            **fields,
        )
        return self.store.create(profile)

    def create_admin(self, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD) -> Credential:
        profile = Credential(email=email, role=ROLE_ADMIN, first_name="Site", last_name="Admin")
        return self.accounts.create_admin(profile, password)

    def token_for(self, credential: Credential) -> str:
        current = self.store.get_by_id(credential.id)
        assert current is not None
        return self.accounts.issuer.issue(current)

    def auth(self, credential: Credential) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_for(credential)}"}


def _build_harness(settings: Settings) -> Generator[Harness, None, None]:
    store = _make_test_store("auth")
    notifier = RecordingNotifier()
    clock = FakeClock()
    accounts = build_account_service(settings, store, notifier, clock=clock)

    app.router.lifespan_context = _patch_lifespan(accounts, settings)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield Harness(client, accounts, store, notifier, clock, settings)

    store.close()


@pytest.fixture
def harness() -> Generator[Harness, None, None]:
    """Yield a Harness around the real FastAPI app with fresh ledgers and DB."""
    yield from _build_harness(make_settings())


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = _make_test_store("store")
    yield s
    s.close()
