"""
tests/test_notify.py -- Unit tests for notify/email.py.

Covers:
  - build_notifier picks the log transport when SMTP_HOST is empty
  - SmtpEmailNotifier builds a text+HTML message, uses STARTTLS and login
  - relay failures surface as ExternalServiceError
  - user-supplied names are HTML-escaped in the HTML part
"""

from __future__ import annotations

import smtplib

import pytest
from conftest import TEST_SECRET

from core.config import Settings
from core.errors import ExternalServiceError
from notify import email as email_module
from notify.email import LogEmailNotifier, SmtpEmailNotifier, build_notifier


class FakeSMTP:
    """Stands in for smtplib.SMTP; records what the notifier does with it."""

    instances: list["FakeSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None) -> None:
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.host, self.port, self.timeout = host, port, timeout
        self.started_tls = False
        self.logged_in_as: str | None = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, username, password) -> None:
        self.logged_in_as = username

    def send_message(self, msg) -> None:
        self.messages.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def _smtp_settings(**overrides) -> Settings:
    fields = dict(
        secret_key=TEST_SECRET,
        smtp_host="smtp.example.test",
        smtp_port=2525,
        smtp_username="mailer",
        smtp_password="relay-password",
        sender_email="noreply@expenses.test",
        sender_name="Expense Manager",
    )
    fields.update(overrides)
    return Settings(**fields)


def test_build_notifier_without_host_logs_only() -> None:
    assert isinstance(build_notifier(Settings(secret_key=TEST_SECRET, smtp_host="")), LogEmailNotifier)


def test_build_notifier_with_host_uses_smtp() -> None:
    assert isinstance(build_notifier(_smtp_settings()), SmtpEmailNotifier)


def test_log_notifier_sends_nothing(caplog) -> None:
    LogEmailNotifier().send_password_reset_email("a@x.com", "Ada", "https://expenses.test/reset-password?token=t")
    assert "a@x.com" in caplog.text
    assert "token=t" not in caplog.text


def test_smtp_message_shape(fake_smtp) -> None:
    SmtpEmailNotifier(_smtp_settings()).send_account_approved_email(
        "a@x.com", "Ada", "https://expenses.test/reset-password?token=abc&userId=1"
    )

    [server] = fake_smtp.instances
    assert (server.host, server.port) == ("smtp.example.test", 2525)
    assert server.started_tls is True
    assert server.logged_in_as == "mailer"

    [msg] = server.messages
    assert msg["To"] == "a@x.com"
    assert msg["Subject"] == "Expense Manager: Account Approved"
    assert "noreply@expenses.test" in msg["From"]
    html_part = msg.get_body(preferencelist=("html",)).get_content()
    assert 'href="https://expenses.test/reset-password?token=abc&amp;userId=1"' in html_part
    text_part = msg.get_body(preferencelist=("plain",)).get_content()
    assert "https://expenses.test/reset-password?token=abc&userId=1" in text_part


def test_smtp_without_tls_or_credentials(fake_smtp) -> None:
    notifier = SmtpEmailNotifier(_smtp_settings(smtp_use_tls=False, smtp_username="", smtp_password=""))
    notifier.send_verification_email("boss@x.com", "Ada Lovelace", "https://expenses.test/verify-user?token=t")
    [server] = fake_smtp.instances
    assert server.started_tls is False
    assert server.logged_in_as is None


def test_names_are_escaped_in_html(fake_smtp) -> None:
    SmtpEmailNotifier(_smtp_settings()).send_verification_email(
        "boss@x.com", "<script>alert(1)</script>", "https://expenses.test/verify-user?token=t"
    )
    [msg] = fake_smtp.instances[0].messages
    html_part = msg.get_body(preferencelist=("html",)).get_content()
    assert "<script>" not in html_part
    assert "&lt;script&gt;" in html_part


@pytest.mark.parametrize(
    "failure",
    [smtplib.SMTPConnectError(421, b"busy"), ConnectionRefusedError("refused")],
)
def test_relay_failure_raises_external_service_error(fake_smtp, failure) -> None:
    fake_smtp.fail_with = failure
    with pytest.raises(ExternalServiceError):
        SmtpEmailNotifier(_smtp_settings()).send_password_reset_email("a@x.com", "Ada", "https://x.test/r")
