"""
tests/conftest.py -- Shared fixtures for the account service tests.

This module provides:
  - settings: test Settings (fixed secret, low bcrypt cost, fixed base URL)
  - store: isolated in-memory AccountStore per test
  - notifier: RecordingNotifier that captures every email, optionally failing
  - validator: FakeIdentityValidator mapping ID-token strings to identities
  - services: the full component graph from build_services()
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool.
Plain :memory: databases are per-connection and would present a blank schema
to each worker thread.

DEBUG and LOGIN_RATE_LIMIT must be set before any project import so
get_settings() can auto-generate SECRET_KEY and the login limiter does not
trip during the suite.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, urlparse

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import AccountDraft, FederatedIdentity, Role
from auth.service import AccountServices, build_services
from auth.store import AccountStore
from core.config import Settings
from core.errors import AuthenticationError, ExternalServiceError

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
TEST_BASE_URL = "https://expenses.test"
TEST_AUDIENCE = "test-client-id.apps.googleusercontent.com"
STRONG_PASSWORD = "NewP@ss1"


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """EmailNotifier that records messages instead of sending them.

    Recipients listed in fail_for raise ExternalServiceError, like a relay
    rejecting the message.
    """

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str, str, str]] = []
        self.fail_for = set(fail_for or ())

    def _record(self, kind: str, recipient: str, user_name: str, link: str) -> None:
        if recipient in self.fail_for:
            raise ExternalServiceError(f"relay refused {recipient}")
        self.sent.append((kind, recipient, user_name, link))

    def send_verification_email(self, admin_email: str, user_name: str, link: str) -> None:
        self._record("verification", admin_email, user_name, link)

    def send_password_reset_email(self, email: str, user_name: str, link: str) -> None:
        self._record("reset", email, user_name, link)

    def send_account_approved_email(self, email: str, user_name: str, link: str) -> None:
        self._record("approved", email, user_name, link)

    def of_kind(self, kind: str) -> list[tuple[str, str, str, str]]:
        return [m for m in self.sent if m[0] == kind]


class FakeIdentityValidator:
    """IdentityValidator that trusts a fixed table of token -> identity."""

    def __init__(self) -> None:
        self.identities: dict[str, FederatedIdentity] = {}
        self.audiences: list[str] = []

    def register(self, token: str, email: str, subject_id: str, given: str = "Bea", family: str = "Young") -> str:
        self.identities[token] = FederatedIdentity(
            email=email, given_name=given, family_name=family, subject_id=subject_id
        )
        return token

    def validate(self, token: str, expected_audience: str) -> FederatedIdentity:
        self.audiences.append(expected_audience)
        try:
            return self.identities[token]
        except KeyError:
            raise AuthenticationError("Invalid Google ID token.", reason="invalid_token") from None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_draft(**overrides) -> AccountDraft:
    fields = {
        "external_id": "u1",
        "name": "Ada",
        "surname": "Lovelace",
        "email": "a@x.com",
        "role": Role.USER,
    }
    fields.update(overrides)
    return AccountDraft(**fields)


def link_params(link: str) -> tuple[str, int]:
    """Return (token, account_id) from an emailed link."""
    query = parse_qs(urlparse(link).query)
    return query["token"][0], int(query["userId"][0])


def make_admin(services: AccountServices, email: str = "boss@x.com", external_id: str = "admin1"):
    """Create an admin that can already log in (first login completed)."""
    admin = services.bootstrap_admin(
        make_draft(external_id=external_id, email=email, name="Grace", surname="Hopper", role=Role.ADMIN),
        "Adm1n!pass",
    )
    admin.is_first_login = False
    services.store.update(admin)
    return admin


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        secret_key=TEST_SECRET,
        base_url=TEST_BASE_URL,
        bcrypt_rounds=4,
        google_client_id=TEST_AUDIENCE,
    )


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def validator() -> FakeIdentityValidator:
    return FakeIdentityValidator()


@pytest.fixture
def services(store, notifier, validator, settings) -> AccountServices:
    return build_services(store=store, notifier=notifier, validator=validator, settings=settings)


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module
# ---------------------------------------------------------------------------


def _patch_lifespan(services: AccountServices):
    """Return a lifespan that wires pre-built test services into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.services = services
        await asyncio.sleep(0)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AccountServices, RecordingNotifier, FakeIdentityValidator], None, None]:
    """Yield (client, services, notifier, validator) backed by an isolated shared-memory store."""
    db_name = request.module.__name__.replace(".", "_")
    store = AccountStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    notifier = RecordingNotifier()
    validator = FakeIdentityValidator()
    settings = Settings(
        debug=True,
        secret_key=TEST_SECRET,
        base_url=TEST_BASE_URL,
        bcrypt_rounds=4,
        google_client_id=TEST_AUDIENCE,
    )
    services = build_services(store=store, notifier=notifier, validator=validator, settings=settings)

    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, services, notifier, validator

    store.close()
