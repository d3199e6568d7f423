"""
core/errors.py -- Error taxonomy for the account lifecycle core.

Every failure a lifecycle operation reports to its caller is one of these
kinds. The API layer maps each kind to one HTTP status and one JSON envelope;
nothing below api/ knows about HTTP.

  ValidationError       -- malformed input (field-level messages attached)
  ConflictError         -- duplicate email or external id
  NotFoundError         -- lookup by id found nothing
  AuthenticationError   -- bad credential, disabled account, rejected ID token
  ExternalServiceError  -- email transport or identity provider unavailable

Token-validity checks (admin verification, reset completion) do NOT raise:
they collapse every failure reason into a plain False so callers cannot
distinguish "expired" from "wrong token" from "unknown account".

Layer rule: core/ is the kernel. No imports from api/, auth/, or notify/.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for every error the lifecycle core raises on purpose."""

    code = "account_error"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(AccountError):
    code = "validation_error"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message, detail="; ".join(self.errors) or None)


class ConflictError(AccountError):
    code = "conflict"


class NotFoundError(AccountError):
    code = "not_found"


class AuthenticationError(AccountError):
    """Credential or identity check failed.

    reason is an internal classification for logs and tests. It is never a
    substitute for the message the API shows -- see api/routes/v1/accounts.py
    for which reasons share a public message.
    """

    code = "unauthorized"

    def __init__(self, message: str, *, reason: str = "unauthorized") -> None:
        super().__init__(message)
        self.reason = reason


class ExternalServiceError(AccountError):
    code = "external_service_error"
