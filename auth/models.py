"""
auth/models.py -- Domain dataclasses for the account lifecycle.

Pattern: Data class (pure data containers). Stores and lifecycle components
do the work; these types only own the domain shape.

Layer rule: no imports from api/ or notify/. core/ is allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from core.errors import ValidationError


class Role(str, Enum):
    """Closed set of account roles. The string value is what session tokens carry."""

    ADMIN = "Admin"
    USER = "User"
    MANAGER = "Manager"
    ASSOCIER = "Associer"
    EMPLOYE = "Employe"

    @classmethod
    def parse(cls, value: Role | str | int) -> Role:
        """Resolve a role from its name or its legacy integer code (1..5).

        Unknown values are rejected here, at the boundary, so the rest of the
        code only ever sees a Role member.
        """
        if isinstance(value, Role):
            return value
        if isinstance(value, bool):
            raise ValidationError("Invalid role.", [f"role: unknown value {value!r}"])
        if isinstance(value, int):
            members = list(cls)
            if 1 <= value <= len(members):
                return members[value - 1]
        elif isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        raise ValidationError("Invalid role.", [f"role: unknown value {value!r}"])


@dataclass(frozen=True)
class ExpiringToken:
    """A single-use opaque token bound to one purpose, with a UTC expiry.

    "Clearing" a token means setting the owning field to None; an empty
    value is never used as a sentinel.
    """

    value: str
    expires_at: datetime


@dataclass
class AccountDraft:
    """Caller-supplied fields for a new account. Validated by AccountRegistrar."""

    external_id: str
    name: str
    surname: str
    email: str
    role: Role | str | int = Role.USER
    gpn: str = ""


@dataclass
class Account:
    """The sole persisted entity of the lifecycle core.

    email is always stored normalized (trimmed, lower-cased).
    password_hash is a bcrypt hash; the plaintext is never kept anywhere.
    verification_token is present only while an administrator has not yet
    reviewed the account; reset_token only between issuance and use.
    federated_subject is the Google "sub" claim once the account is linked.
    Profile-image columns are opaque to this package.
    """

    external_id: str
    name: str
    surname: str
    email: str
    password_hash: str
    role: Role = Role.USER
    id: int | None = None
    gpn: str = ""
    enabled: bool = False
    email_verified: bool = False
    is_first_login: bool = True
    verification_token: ExpiringToken | None = None
    reset_token: ExpiringToken | None = None
    federated_subject: str | None = None
    profile_image_path: str | None = None
    profile_image_filename: str | None = None
    profile_image_content_type: str | None = None
    created_at: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.surname}".strip()

    @property
    def awaiting_review(self) -> bool:
        """Registered but not yet approved or rejected by an admin."""
        return not self.email_verified or self.verification_token is not None


@dataclass(frozen=True)
class FederatedIdentity:
    """Claims extracted from a validated external ID token."""

    email: str
    given_name: str
    family_name: str
    subject_id: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful credential or federated login.

    Exactly one of session_token / reset_token is set:
      password_change_required=False -> session_token carries a signed session.
      password_change_required=True  -> reset_token must be spent through
                                        CredentialResetFlow.complete_reset().
    """

    account_id: int
    email: str
    role: Role
    name: str
    surname: str
    password_change_required: bool
    session_token: str | None = None
    reset_token: str | None = None
