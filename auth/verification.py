"""
auth/verification.py -- AdminVerificationGate: approve or reject pending accounts.

State machine (one transition per verification token):

    Pending --approve--> Approved   email verified, verification token cleared,
                                    7-day reset token issued and emailed
    Pending --reject---> Deleted    row removed

Any other starting state, a wrong token, an expired token, or an unknown
account all return False -- the caller learns nothing about which one.

The token check is done twice: once in Python with a constant-time compare
(to fail fast without a write), and once more inside the conditional
UPDATE/DELETE the store runs [R1]. Only the second one is authoritative; it
is what stops two concurrent approvals of the same token both succeeding.
"""

from __future__ import annotations

import logging

from auth.store import AccountStore
from auth.tokens import APPROVAL_RESET_TOKEN_TTL, issue_token, token_link, token_matches, utcnow
from core.config import Settings
from notify.email import EmailNotifier

logger = logging.getLogger("expensegate.auth.verification")


class AdminVerificationGate:
    def __init__(self, store: AccountStore, notifier: EmailNotifier, settings: Settings) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings

    def verify(self, account_id: int, token: str, approve: bool) -> bool:
        now = utcnow()
        account = self._store.get_by_id(account_id)
        if (
            account is None
            or account.email_verified
            or account.enabled
            or not token_matches(account.verification_token, token, now)
        ):
            logger.info("Verification rejected for account id %s", account_id)
            return False

        if not approve:
            if not self._store.delete_pending(account_id, token, now):
                logger.info("Verification token for account %s already spent", account_id)
                return False
            logger.info("Account %s (%s) rejected and deleted", account_id, account.email)
            return True

        reset_token = issue_token(APPROVAL_RESET_TOKEN_TTL, now)
        if not self._store.approve_pending(account_id, token, now, reset_token):
            logger.info("Verification token for account %s already spent", account_id)
            return False
        logger.info("Account %s (%s) approved", account_id, account.email)

        # The transition is committed. A relay failure here leaves the account
        # approved; the owner can still obtain a link via request_reset().
        link = token_link(self._settings.base_url, "reset-password", reset_token.value, account_id)
        try:
            self._notifier.send_account_approved_email(account.email, account.name, link)
        except Exception:
            logger.exception("Approval email to %s failed for account %s", account.email, account_id)
        return True
