"""
auth/registration.py -- AccountRegistrar: create pending accounts, alert admins.

A registered account starts unusable: disabled, email unverified, first-login
pending, and holding only the hash of a random password nobody was told.
The verification token issued here (48h) is emailed to every Admin; an
administrator spends it through AdminVerificationGate.

Admin notification is best-effort per recipient. One relay failure must not
abort the registration or hide the account from the other admins, so each
send is isolated and every failure is logged.

Layer rule: no imports from api/. notify/ is imported for its protocol only.
"""

from __future__ import annotations

import logging
import re

from auth.models import Account, AccountDraft, Role
from auth.store import AccountStore, normalize_email
from auth.tokens import (
    VERIFICATION_TOKEN_TTL,
    generate_throwaway_password,
    hash_password,
    issue_token,
    token_link,
)
from core.config import Settings
from core.errors import ConflictError, ValidationError
from notify.email import EmailNotifier

logger = logging.getLogger("expensegate.auth.registration")

# Pragmatic shape check: one @, no whitespace, a dot in the domain.
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_MAX_EXTERNAL_ID = 50
_MAX_NAME = 100
_MAX_EMAIL = 100
_MAX_GPN = 50


class AccountRegistrar:
    def __init__(self, store: AccountStore, notifier: EmailNotifier, settings: Settings) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings

    def register(self, draft: AccountDraft) -> Account:
        """Create a pending account and notify every administrator.

        Raises:
            ValidationError: a field is missing, too long, or malformed.
            ConflictError: the email (any casing) or external id is taken.
        """
        role = validate_draft(draft)
        email = normalize_email(draft.email)
        external_id = draft.external_id.strip()

        if self._store.get_by_email(email) is not None:
            raise ConflictError("Email is already registered.")
        if self._store.get_by_external_id(external_id) is not None:
            raise ConflictError("External id already exists.")

        account = Account(
            external_id=external_id,
            name=draft.name.strip(),
            surname=draft.surname.strip(),
            email=email,
            password_hash=hash_password(generate_throwaway_password(), rounds=self._settings.bcrypt_rounds),
            role=role,
            gpn=(draft.gpn or "").strip(),
            enabled=False,
            email_verified=False,
            is_first_login=True,
            verification_token=issue_token(VERIFICATION_TOKEN_TTL),
        )
        created = self._store.add(account)
        logger.info("Registered account %s (%s), pending admin review", created.id, created.email)

        self._notify_admins(created)
        return created

    def _notify_admins(self, account: Account) -> int:
        """Email every Admin a verification link. Returns how many sends succeeded."""
        link = token_link(self._settings.base_url, "verify-user", account.verification_token.value, account.id)
        admins = self._store.list_by_role(Role.ADMIN)
        if not admins:
            logger.warning("No Admin accounts exist -- account %s cannot be reviewed yet", account.id)

        delivered = 0
        for admin in admins:
            try:
                self._notifier.send_verification_email(admin.email, account.display_name, link)
            except Exception:
                logger.exception("Verification email to admin %s failed for account %s", admin.email, account.id)
                continue
            delivered += 1
        if admins and delivered < len(admins):
            logger.error(
                "Account %s: %d of %d admin notifications failed", account.id, len(admins) - delivered, len(admins)
            )
        return delivered


def validate_draft(draft: AccountDraft) -> Role:
    """Collect every field error at once; return the parsed role if all pass."""
    errors: list[str] = []

    def _required(field: str, value: str | None, limit: int) -> None:
        text = (value or "").strip()
        if not text:
            errors.append(f"{field}: is required")
        elif len(text) > limit:
            errors.append(f"{field}: cannot exceed {limit} characters")

    _required("external_id", draft.external_id, _MAX_EXTERNAL_ID)
    _required("name", draft.name, _MAX_NAME)
    _required("surname", draft.surname, _MAX_NAME)
    _required("email", draft.email, _MAX_EMAIL)

    email = (draft.email or "").strip()
    if email and not _EMAIL_RE.match(email):
        errors.append("email: invalid email format")
    if draft.gpn and len(draft.gpn.strip()) > _MAX_GPN:
        errors.append(f"gpn: cannot exceed {_MAX_GPN} characters")

    role: Role | None = None
    try:
        role = Role.parse(draft.role)
    except ValidationError as exc:
        errors.extend(exc.errors)

    if errors:
        raise ValidationError("Account data is invalid.", errors)
    return role
