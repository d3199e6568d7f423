"""
auth/federated.py -- FederatedIdentityBridge: Google login with just-in-time accounts.

The identity provider is trusted to have established ownership of the email,
so a new federated account skips the admin verification gate and the
first-login reset entirely:

  - unknown email   -> create an enabled, verified User account on the spot,
                       with a random password hash nobody knows
  - known, unlinked -> attach the provider subject id; enabled and
                       email_verified are left as they are
  - always          -> issue a session token in the same call

The local external id for a new account is the provider subject id, capped
at EXTERNAL_ID_MAX_LENGTH characters.
"""

from __future__ import annotations

import logging

from auth.models import Account, AuthResult, FederatedIdentity, Role
from auth.oauth import IdentityValidator
from auth.session import SessionIssuer
from auth.store import AccountStore, normalize_email
from auth.tokens import generate_throwaway_password, hash_password
from core.config import Settings
from core.errors import ConflictError

logger = logging.getLogger("expensegate.auth.federated")

EXTERNAL_ID_MAX_LENGTH = 50


class FederatedIdentityBridge:
    def __init__(
        self,
        store: AccountStore,
        validator: IdentityValidator,
        sessions: SessionIssuer,
        settings: Settings,
    ) -> None:
        self._store = store
        self._validator = validator
        self._sessions = sessions
        self._settings = settings

    def authenticate_with_google(self, id_token: str) -> AuthResult:
        """Validate a Google ID token and return a session for its account.

        The session is issued whatever the account state. For an existing
        account that is disabled or still awaiting admin review, the token is
        returned but auth/dependencies.py rejects it on every protected route
        until the account is enabled; linking never approves an account.

        Raises AuthenticationError for a rejected token and
        ExternalServiceError when the provider cannot be consulted.
        """
        identity = self._validator.validate(id_token, self._settings.google_client_id)
        account = self._store.get_by_email(identity.email)

        if account is None:
            account = self._provision(identity)
        elif not account.federated_subject:
            self._store.link_federated(account.id, identity.subject_id)
            account.federated_subject = identity.subject_id
            logger.info("Linked Google identity to account %s", account.id)

        logger.info("Federated session issued for account %s", account.id)
        return AuthResult(
            account_id=account.id,
            email=account.email,
            role=account.role,
            name=account.name,
            surname=account.surname,
            password_change_required=False,
            session_token=self._sessions.issue_session(account),
        )

    def _provision(self, identity: FederatedIdentity) -> Account:
        account = Account(
            external_id=identity.subject_id[:EXTERNAL_ID_MAX_LENGTH],
            name=identity.given_name,
            surname=identity.family_name,
            email=normalize_email(identity.email),
            password_hash=hash_password(generate_throwaway_password(), rounds=self._settings.bcrypt_rounds),
            role=Role.USER,
            enabled=True,
            email_verified=True,
            is_first_login=False,
            federated_subject=identity.subject_id,
        )
        try:
            created = self._store.add(account)
        except ConflictError:
            # A concurrent first login for the same email won the insert.
            existing = self._store.get_by_email(identity.email)
            if existing is None:
                raise
            return existing
        logger.info("Provisioned account %s from Google identity (%s)", created.id, created.email)
        return created
