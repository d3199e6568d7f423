"""
auth/service.py -- Wiring for the account lifecycle components.

build_services() is the single place that decides which store, notifier, and
identity validator each component receives. The API lifespan, the CLI, and
the test fixtures all call it, so every entry point runs the same graph:

    AccountRegistrar        store, notifier
    AdminVerificationGate   store, notifier
    CredentialResetFlow     store, notifier
    SessionIssuer           store
    FederatedIdentityBridge store, identity validator, SessionIssuer

AccountServices also carries the read-side queries administrators need and
the bootstrap-admin operation used by main.py.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.federated import FederatedIdentityBridge
from auth.models import Account, AccountDraft, Role
from auth.oauth import IdentityValidator
from auth.registration import AccountRegistrar, validate_draft
from auth.reset import CredentialResetFlow, validate_new_password
from auth.session import SessionIssuer
from auth.store import AccountStore, normalize_email
from auth.tokens import hash_password
from auth.verification import AdminVerificationGate
from core.config import Settings
from core.errors import ConflictError, NotFoundError
from notify.email import EmailNotifier

logger = logging.getLogger("expensegate.auth.service")


@dataclass
class AccountServices:
    store: AccountStore
    settings: Settings
    registrar: AccountRegistrar
    verification: AdminVerificationGate
    resets: CredentialResetFlow
    sessions: SessionIssuer
    federated: FederatedIdentityBridge

    def get_account(self, account_id: int) -> Account:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise NotFoundError("Account not found.")
        return account

    def list_pending_verifications(self) -> list[Account]:
        return self.store.list_pending_verification()

    def bootstrap_admin(self, draft: AccountDraft, password: str) -> Account:
        """Create an enabled, verified Admin with a known initial password.

        is_first_login stays True, so the first successful login returns a
        reset token instead of a session and the admin must choose a new
        password before doing anything else.
        """
        validate_draft(draft)
        validate_new_password(password)
        if self.store.get_by_email(draft.email) is not None:
            raise ConflictError("Email is already registered.")
        if self.store.get_by_external_id(draft.external_id) is not None:
            raise ConflictError("External id already exists.")

        account = self.store.add(
            Account(
                external_id=draft.external_id.strip(),
                name=draft.name.strip(),
                surname=draft.surname.strip(),
                email=normalize_email(draft.email),
                password_hash=hash_password(password, rounds=self.settings.bcrypt_rounds),
                role=Role.ADMIN,
                gpn=(draft.gpn or "").strip(),
                enabled=True,
                email_verified=True,
                is_first_login=True,
            )
        )
        logger.info("Bootstrap admin %s (%s) created", account.id, account.email)
        return account


def build_services(
    store: AccountStore,
    notifier: EmailNotifier,
    validator: IdentityValidator,
    settings: Settings,
) -> AccountServices:
    sessions = SessionIssuer(store, settings)
    return AccountServices(
        store=store,
        settings=settings,
        registrar=AccountRegistrar(store, notifier, settings),
        verification=AdminVerificationGate(store, notifier, settings),
        resets=CredentialResetFlow(store, notifier, settings),
        sessions=sessions,
        federated=FederatedIdentityBridge(store, validator, sessions, settings),
    )
