"""
auth/session.py -- SessionIssuer: credential login and session-token issuance.

authenticate() runs these checks in order; the first failure raises
AuthenticationError with a distinct internal reason:

  1. account exists for the normalized email          reason=unknown_account
  2. password verifies against the stored bcrypt hash reason=bad_password
  3. account is enabled                               reason=not_activated
  4. first login?  -> 24h reset token, no session (password_change_required)
  5. otherwise     -> 7-day signed session token

Step 1 still runs one bcrypt check against a dummy hash so an unknown email
costs the same time as a wrong password [C1]. The reasons themselves remain
distinguishable to the caller; api/ decides what to reveal.
"""

from __future__ import annotations

import logging

from auth.models import Account, AuthResult
from auth.store import AccountStore, normalize_email
from auth.tokens import (
    RESET_TOKEN_TTL,
    SESSION_TOKEN_TTL,
    create_session_token,
    dummy_hash,
    issue_token,
    verify_password,
)
from core.config import Settings
from core.errors import AuthenticationError

logger = logging.getLogger("expensegate.auth.session")


class SessionIssuer:
    def __init__(self, store: AccountStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    def authenticate(self, email: str, password: str) -> AuthResult:
        account = self._store.get_by_email(normalize_email(email))
        if account is None:
            verify_password(password, dummy_hash(self._settings.bcrypt_rounds))  # [C1]
            logger.info("Login failed: unknown account")
            raise AuthenticationError("User not found.", reason="unknown_account")

        if not verify_password(password, account.password_hash):
            logger.info("Login failed for account %s: bad password", account.id)
            raise AuthenticationError("Invalid password.", reason="bad_password")

        if not account.enabled:
            logger.info("Login refused for account %s: not activated", account.id)
            raise AuthenticationError(
                "Account not activated. Please contact an administrator.", reason="not_activated"
            )

        if account.is_first_login:
            token = issue_token(RESET_TOKEN_TTL)
            self._store.set_reset_token(account.id, token)
            logger.info("Account %s must replace its password before a session is issued", account.id)
            return _result(account, password_change_required=True, reset_token=token.value)

        logger.info("Session issued for account %s", account.id)
        return _result(account, password_change_required=False, session_token=self.issue_session(account))

    def issue_session(self, account: Account) -> str:
        """Signed session token with exactly sub/email/role claims."""
        claims = {"sub": account.id, "email": account.email, "role": account.role.value}
        return create_session_token(claims, self._settings.secret_key, SESSION_TOKEN_TTL)


def _result(account: Account, **fields) -> AuthResult:
    return AuthResult(
        account_id=account.id,
        email=account.email,
        role=account.role,
        name=account.name,
        surname=account.surname,
        **fields,
    )
