"""
API request and response models for the account REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field constraints here are transport hygiene (lengths, presence). The
lifecycle components re-validate everything that matters -- email format,
role membership, password policy -- so non-HTTP callers get the same rules.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Account, AuthResult, Role

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AccountCreate(BaseModel):
    """Request body for POST /api/v1/accounts.

    role accepts the role name ("User") or its legacy integer code (2).
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    external_id: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    surname: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=100)
    role: str | int = Role.USER.value
    gpn: str = Field(default="", max_length=50)


class VerificationRequest(BaseModel):
    """Request body for POST /api/v1/accounts/verify."""

    account_id: int
    token: str = Field(min_length=1, max_length=64)
    approve: bool


class PasswordResetRequest(BaseModel):
    """Request body for POST /api/v1/accounts/request-password-reset."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=100)


class PasswordResetCompletion(BaseModel):
    """Request body for POST /api/v1/accounts/reset-password."""

    account_id: int
    token: str = Field(min_length=1, max_length=64)
    new_password: str = Field(min_length=6, max_length=100)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/accounts/authenticate.

    Only email is trimmed. password is compared exactly as sent, matching how
    /reset-password stores it, so surrounding spaces are part of the secret.
    """

    email: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=1, max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class GoogleAuthRequest(BaseModel):
    """Request body for POST /api/v1/accounts/google-auth."""

    id_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Never includes hashes or tokens."""

    model_config = ConfigDict(frozen=True)

    id: int
    external_id: str
    name: str
    surname: str
    email: str
    role: str
    gpn: str
    enabled: bool
    email_verified: bool
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            external_id=account.external_id,
            name=account.name,
            surname=account.surname,
            email=account.email,
            role=account.role.value,
            gpn=account.gpn,
            enabled=account.enabled,
            email_verified=account.email_verified,
            created_at=account.created_at or "",
        )


class PendingAccountResponse(AccountResponse):
    """Admin view of an account awaiting review, including its verification token."""

    verification_token: str
    verification_expires_at: str

    @classmethod
    def from_account(cls, account: Account) -> "PendingAccountResponse":
        base = AccountResponse.from_account(account).model_dump()
        return cls(
            **base,
            verification_token=account.verification_token.value,
            verification_expires_at=account.verification_token.expires_at.isoformat(),
        )


class AuthResponse(BaseModel):
    """Result of POST /authenticate and POST /google-auth.

    password_change_required=True means no session was issued: spend
    password_reset_token via POST /reset-password, then log in again.
    """

    model_config = ConfigDict(frozen=True)

    account_id: int
    email: str
    name: str
    surname: str
    role: str
    password_change_required: bool
    token: str | None = None
    token_type: str | None = None
    password_reset_token: str | None = None

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            account_id=result.account_id,
            email=result.email,
            name=result.name,
            surname=result.surname,
            role=result.role.value,
            password_change_required=result.password_change_required,
            token=result.session_token,
            token_type="bearer" if result.session_token else None,  # noqa: S106 -- OAuth token type
            password_reset_token=result.reset_token,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: str | None = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
