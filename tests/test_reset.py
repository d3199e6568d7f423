"""
tests/test_reset.py -- Unit tests for CredentialResetFlow and the password policy.

Covers:
  - request_reset returns None for known and unknown emails alike
  - only a known, approved email gets a 24h token and an email
  - an account awaiting admin review can neither get nor spend a reset token
  - email failure during request_reset is swallowed
  - complete_reset: wrong / expired / spent token leaves the hash untouched
  - complete_reset success activates the account and ends first-login
  - weak passwords raise ValidationError before any token is checked
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import (
    STRONG_PASSWORD,
    TEST_BASE_URL,
    FakeIdentityValidator,
    RecordingNotifier,
    link_params,
    make_draft,
)

from auth.models import ExpiringToken
from auth.reset import validate_new_password
from auth.service import build_services
from auth.tokens import issue_token, utcnow, verify_password
from core.errors import AuthenticationError, ValidationError


def _approved(services):
    """Register and approve an account; return (account_id, reset_token)."""
    account = services.registrar.register(make_draft())
    services.verification.verify(account.id, account.verification_token.value, approve=True)
    return account.id, services.store.get_by_id(account.id).reset_token.value


class TestRequestReset:
    def test_unknown_email_returns_none_and_sends_nothing(self, services, notifier) -> None:
        assert services.resets.request_reset("nobody@x.com") is None
        assert notifier.sent == []

    def test_known_email_gets_24h_token_and_link(self, services, store, notifier) -> None:
        account_id, _ = _approved(services)
        before = utcnow()

        assert services.resets.request_reset("A@X.com") is None

        stored = store.get_by_id(account_id).reset_token
        assert stored is not None
        assert before + timedelta(hours=24) <= stored.expires_at <= utcnow() + timedelta(hours=24)

        [(_, recipient, _, link)] = notifier.of_kind("reset")
        assert recipient == "a@x.com"
        assert link.startswith(f"{TEST_BASE_URL}/reset-password?")
        assert link_params(link) == (stored.value, account_id)

    def test_email_failure_is_swallowed(self, store, settings) -> None:
        notifier = RecordingNotifier(fail_for={"a@x.com"})
        services = build_services(store, notifier, FakeIdentityValidator(), settings)
        account_id, _ = _approved(services)
        assert services.resets.request_reset("a@x.com") is None
        assert store.get_by_id(account_id).reset_token is not None

    def test_new_request_replaces_previous_token(self, services, store) -> None:
        account_id, _ = _approved(services)
        services.resets.request_reset("a@x.com")
        first = store.get_by_id(account_id).reset_token.value
        services.resets.request_reset("a@x.com")

        assert services.resets.complete_reset(account_id, first, STRONG_PASSWORD) is False


class TestPendingAccountsCannotReset:
    def test_request_issues_nothing(self, services, store, notifier) -> None:
        account = services.registrar.register(make_draft())

        assert services.resets.request_reset("a@x.com") is None

        assert store.get_by_id(account.id).reset_token is None
        assert notifier.of_kind("reset") == []

    def test_planted_token_cannot_activate(self, services, store) -> None:
        account = services.registrar.register(make_draft())
        planted = issue_token(timedelta(hours=24))
        store.set_reset_token(account.id, planted)

        assert services.resets.complete_reset(account.id, planted.value, STRONG_PASSWORD) is False

        stored = store.get_by_id(account.id)
        assert stored.enabled is False
        assert stored.email_verified is False
        assert stored.verification_token == account.verification_token
        assert stored.password_hash == account.password_hash
        with pytest.raises(AuthenticationError):
            services.sessions.authenticate("a@x.com", STRONG_PASSWORD)

    def test_admin_gate_still_decides(self, services, store) -> None:
        account = services.registrar.register(make_draft())
        services.resets.request_reset("a@x.com")

        assert services.verification.verify(account.id, account.verification_token.value, approve=True) is True
        approved = store.get_by_id(account.id)
        assert approved.email_verified is True
        assert approved.verification_token is None
        assert approved.reset_token is not None


class TestCompleteReset:
    def test_success_sets_password_and_activates(self, services, store) -> None:
        account_id, token = _approved(services)

        assert services.resets.complete_reset(account_id, token, STRONG_PASSWORD) is True

        account = store.get_by_id(account_id)
        assert verify_password(STRONG_PASSWORD, account.password_hash)
        assert account.enabled is True
        assert account.is_first_login is False
        assert account.reset_token is None

    def test_token_is_single_use(self, services) -> None:
        account_id, token = _approved(services)
        assert services.resets.complete_reset(account_id, token, STRONG_PASSWORD) is True
        assert services.resets.complete_reset(account_id, token, "Other#Pass9") is False

    def test_wrong_token_leaves_hash_unchanged(self, services, store) -> None:
        account_id, _ = _approved(services)
        original = store.get_by_id(account_id).password_hash

        assert services.resets.complete_reset(account_id, "0" * 32, STRONG_PASSWORD) is False
        assert store.get_by_id(account_id).password_hash == original

    def test_expired_token_leaves_hash_unchanged(self, services, store) -> None:
        account_id, token = _approved(services)
        store.set_reset_token(account_id, ExpiringToken(value=token, expires_at=utcnow() - timedelta(seconds=1)))
        original = store.get_by_id(account_id).password_hash

        assert services.resets.complete_reset(account_id, token, STRONG_PASSWORD) is False
        account = store.get_by_id(account_id)
        assert account.password_hash == original
        assert account.enabled is False

    def test_unknown_account(self, services) -> None:
        _, token = _approved(services)
        assert services.resets.complete_reset(9999, token, STRONG_PASSWORD) is False

    def test_weak_password_raises_and_keeps_token(self, services, store) -> None:
        account_id, token = _approved(services)
        with pytest.raises(ValidationError):
            services.resets.complete_reset(account_id, token, "weak")
        assert store.get_by_id(account_id).reset_token.value == token


class TestPasswordPolicy:
    @pytest.mark.parametrize("password", ["NewP@ss1", "aB3$xy", "Xx9!" + "a" * 96])
    def test_accepted(self, password: str) -> None:
        validate_new_password(password)

    @pytest.mark.parametrize(
        "password",
        [
            "aB3$x",  # too short
            "Xx9!" + "a" * 97,  # too long
            "newp@ss1",  # no uppercase
            "NEWP@SS1",  # no lowercase
            "NewP@ssword",  # no digit
            "NewPass12",  # no special character
        ],
    )
    def test_rejected(self, password: str) -> None:
        with pytest.raises(ValidationError):
            validate_new_password(password)
