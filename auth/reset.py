"""
auth/reset.py -- CredentialResetFlow: password-reset request and completion.

request_reset() is anti-enumeration by construction: it returns None whether
or not the email belongs to an account, and swallows (after logging) any
email transport failure, so the caller's response cannot depend on account
existence.

complete_reset() spends a reset token. Whichever way the token was issued --
admin approval (7d), an explicit request (24h), or the forced first-login
branch of SessionIssuer (24h) -- completing it sets the password, activates
the account, and ends first-login status. Failures collapse into False and
leave the stored hash untouched.

An account still awaiting admin review gets neither: no token is issued for
it and no token it somehow holds can be spent, so activation of a pending
account stays with AdminVerificationGate.
"""

from __future__ import annotations

import logging
import re

from auth.store import AccountStore
from auth.tokens import RESET_TOKEN_TTL, hash_password, issue_token, token_link, token_matches, utcnow
from core.config import Settings
from core.errors import ValidationError
from notify.email import EmailNotifier

logger = logging.getLogger("expensegate.auth.reset")

_MIN_PASSWORD = 6
_MAX_PASSWORD = 100
_STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^\da-zA-Z]).+$")


def validate_new_password(password: str) -> None:
    """Raise ValidationError unless password meets the account password policy.

    Policy: 6..100 characters with at least one lowercase letter, one
    uppercase letter, one digit, and one other character.
    """
    errors: list[str] = []
    if len(password) < _MIN_PASSWORD:
        errors.append(f"password: must be at least {_MIN_PASSWORD} characters")
    if len(password) > _MAX_PASSWORD:
        errors.append(f"password: cannot exceed {_MAX_PASSWORD} characters")
    if not _STRONG_PASSWORD_RE.match(password):
        errors.append("password: needs an uppercase, a lowercase, a number and a special character")
    if errors:
        raise ValidationError("Password does not meet the policy.", errors)


class CredentialResetFlow:
    def __init__(self, store: AccountStore, notifier: EmailNotifier, settings: Settings) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings

    def request_reset(self, email: str) -> None:
        """Issue and email a 24h reset token if email matches an approved account. Always returns None."""
        account = self._store.get_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return
        if account.awaiting_review:
            logger.info("Password reset ignored for account %s awaiting review", account.id)
            return

        token = issue_token(RESET_TOKEN_TTL)
        self._store.set_reset_token(account.id, token)
        link = token_link(self._settings.base_url, "reset-password", token.value, account.id)
        try:
            self._notifier.send_password_reset_email(account.email, account.name, link)
        except Exception:
            logger.exception("Password reset email to %s failed for account %s", account.email, account.id)
            return
        logger.info("Password reset issued for account %s", account.id)

    def complete_reset(self, account_id: int, token: str, new_password: str) -> bool:
        """Set a new password with a valid reset token.

        Raises ValidationError if new_password fails the policy -- that is a
        malformed request, not a token failure, so it is reported as such and
        nothing is consumed.
        """
        validate_new_password(new_password)

        now = utcnow()
        account = self._store.get_by_id(account_id)
        if account is None or account.awaiting_review or not token_matches(account.reset_token, token, now):
            logger.info("Password reset rejected for account id %s", account_id)
            return False

        password_hash = hash_password(new_password, rounds=self._settings.bcrypt_rounds)
        if not self._store.complete_reset(account_id, token, now, password_hash):
            logger.info("Reset token for account %s already spent", account_id)
            return False
        logger.info("Password set for account %s; account active", account_id)
        return True
