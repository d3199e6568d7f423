"""
notify/email.py -- Outbound email for the account lifecycle.

Three messages exist, one per lifecycle event:
  send_verification_email      -- to each Admin: a new account awaits review
  send_password_reset_email    -- to the account owner: reset link (24h)
  send_account_approved_email  -- to the account owner: set-password link (7d)

Two transports implement the EmailNotifier protocol:
  SmtpEmailNotifier -- smtplib with optional STARTTLS and login.
  LogEmailNotifier  -- writes the envelope to the log instead of sending.
                       Selected when SMTP_HOST is empty (local development).

Any transport failure is raised as ExternalServiceError. Whether that is
fatal is the caller's decision: registration isolates failures per admin,
password-reset requests never surface them.

Links carry single-use tokens, so message bodies are never logged.

Layer rule: no imports from api/ or auth/. core/ is allowed.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol

from core.config import Settings
from core.errors import ExternalServiceError

logger = logging.getLogger("expensegate.notify.email")

_SUBJECT_PREFIX = "Expense Manager"


class EmailNotifier(Protocol):
    def send_verification_email(self, admin_email: str, user_name: str, link: str) -> None: ...

    def send_password_reset_email(self, email: str, user_name: str, link: str) -> None: ...

    def send_account_approved_email(self, email: str, user_name: str, link: str) -> None: ...


# ---------------------------------------------------------------------------
# Message bodies
# ---------------------------------------------------------------------------


def _verification_body(user_name: str, link: str) -> tuple[str, str]:
    name, href = html.escape(user_name), html.escape(link, quote=True)
    return (
        f"A new user account has been created for {user_name} and requires your approval.\n\n"
        f"Verify this account: {link}\n\nThis link will expire in 48 hours.",
        f"""<html>
  <body>
    <h2>New User Account Requires Verification</h2>
    <p>A new user account has been created for {name} and requires your approval.</p>
    <p>Click the link below to verify this account:</p>
    <a href="{href}">Verify Account</a>
    <p>This link will expire in 48 hours.</p>
  </body>
</html>""",
    )


def _reset_body(user_name: str, link: str) -> tuple[str, str]:
    name, href = html.escape(user_name), html.escape(link, quote=True)
    return (
        f"Hello {user_name},\n\nYou recently requested to reset your password. Set a new one here:\n"
        f"{link}\n\nThis link will expire in 24 hours. If you did not request this, ignore this email.",
        f"""<html>
  <body>
    <h2>Password Reset Request</h2>
    <p>Hello {name},</p>
    <p>You recently requested to reset your password. Click the link below to set a new password:</p>
    <a href="{href}">Reset Your Password</a>
    <p>This link will expire in 24 hours.</p>
    <p>If you did not request this, please ignore this email.</p>
  </body>
</html>""",
    )


def _approved_body(user_name: str, link: str) -> tuple[str, str]:
    name, href = html.escape(user_name), html.escape(link, quote=True)
    return (
        f"Hello {user_name},\n\nYour account has been approved by an administrator. "
        f"Set your password here:\n{link}\n\nThis link will expire in 7 days.",
        f"""<html>
  <body>
    <h2>Your Account Has Been Approved</h2>
    <p>Hello {name},</p>
    <p>Your account has been approved by an administrator. You can now set your password and access the system.</p>
    <a href="{href}">Set Your Password</a>
    <p>This link will expire in 7 days.</p>
  </body>
</html>""",
    )


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class _TemplatedNotifier:
    """Builds the three lifecycle messages and hands each to _deliver()."""

    def send_verification_email(self, admin_email: str, user_name: str, link: str) -> None:
        text, body = _verification_body(user_name, link)
        self._deliver(admin_email, f"{_SUBJECT_PREFIX}: New User Account Verification", text, body)

    def send_password_reset_email(self, email: str, user_name: str, link: str) -> None:
        text, body = _reset_body(user_name, link)
        self._deliver(email, f"{_SUBJECT_PREFIX}: Password Reset", text, body)

    def send_account_approved_email(self, email: str, user_name: str, link: str) -> None:
        text, body = _approved_body(user_name, link)
        self._deliver(email, f"{_SUBJECT_PREFIX}: Account Approved", text, body)

    def _deliver(self, recipient: str, subject: str, text: str, body: str) -> None:
        raise NotImplementedError


class SmtpEmailNotifier(_TemplatedNotifier):
    """Sends multipart (text + HTML) mail through an SMTP relay.

    A new connection is opened per message. Lifecycle mail is low volume and
    a pooled connection would have to survive idle relay timeouts.
    """

    def __init__(self, settings: Settings) -> None:
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._username = settings.smtp_username
        self._password = settings.smtp_password
        self._use_tls = settings.smtp_use_tls
        self._timeout = settings.smtp_timeout_seconds
        self._sender = formataddr((settings.sender_name, settings.sender_email))

    def _deliver(self, recipient: str, subject: str, text: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._sender
        msg["To"] = recipient
        msg.set_content(text)
        msg.add_alternative(body, subtype="html")
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceError(f"Could not deliver email to {recipient}", detail=str(exc)) from exc
        logger.info("Email sent to %s (%s)", recipient, subject)


class LogEmailNotifier(_TemplatedNotifier):
    """Development transport: records the envelope in the log, sends nothing."""

    def _deliver(self, recipient: str, subject: str, text: str, body: str) -> None:
        logger.warning("SMTP not configured -- email to %s not sent (%s)", recipient, subject)


def build_notifier(settings: Settings) -> EmailNotifier:
    """Pick the transport from configuration."""
    if settings.smtp_host:
        return SmtpEmailNotifier(settings)
    logger.warning("SMTP_HOST is empty -- outbound email will only be logged")
    return LogEmailNotifier()
