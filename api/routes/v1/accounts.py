"""
api/routes/v1/accounts.py -- Account lifecycle REST endpoints.

Routes:
  POST /api/v1/accounts                         -- register (pending admin review)
  POST /api/v1/accounts/verify                  -- admin approves / rejects via emailed token
  POST /api/v1/accounts/request-password-reset  -- always 200, same body [anti-enumeration]
  POST /api/v1/accounts/reset-password          -- spend a reset token, set password
  POST /api/v1/accounts/authenticate            -- password login; session or forced reset
  POST /api/v1/accounts/google-auth             -- Google ID-token login
  GET  /api/v1/accounts/me                      -- current account (requires session)
  GET  /api/v1/accounts/pending-verifications   -- admin only
  GET  /api/v1/accounts/{id}                    -- admin only

Handlers are plain `def`, not `async def`. FastAPI runs them on its worker
thread pool, so bcrypt's deliberate CPU cost never blocks the event loop.

Security:
  [H2] /authenticate is rate-limited per IP (Settings.login_rate_limit).
  [M5] Cache-Control: no-store on every response carrying a credential.
  Token failures on /verify and /reset-password return one generic 400 --
  no hint whether the token was wrong, expired, or the account unknown.
  Unknown email and wrong password share one 401 body on /authenticate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AccountCreate,
    AccountResponse,
    AuthResponse,
    GoogleAuthRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetCompletion,
    PasswordResetRequest,
    PendingAccountResponse,
    VerificationRequest,
)
from auth.dependencies import get_current_account, get_services, require_admin
from auth.models import Account, AccountDraft, AuthResult
from auth.service import AccountServices
from auth.tokens import set_session_cookie
from core.errors import AuthenticationError

# Auth policy:
# - POST /accounts, /verify, /request-password-reset, /reset-password,
#   /authenticate, /google-auth: public (the token or credential is the gate)
# - GET  /accounts/me:                     requires session (get_current_account)
# - GET  /accounts/pending-verifications:  requires Admin (require_admin)
# - GET  /accounts/{id}:                   requires Admin (require_admin)
router = APIRouter()

_RESET_REQUESTED = "If your email exists in our system, you will receive a password reset link."

# Public messages per internal AuthenticationError reason. unknown_account and
# bad_password deliberately share one body.
_LOGIN_FAILURES = {
    "not_activated": ("account_not_activated", "Account not activated. Please contact an administrator."),
}
_BAD_CREDENTIALS = ("bad_credentials", "Invalid email or password.")


# ---------------------------------------------------------------------------
# Registration and admin verification
# ---------------------------------------------------------------------------


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def register(body: AccountCreate, services: AccountServices = Depends(get_services)) -> AccountResponse:
    """Create a pending account. Every Admin receives a verification link."""
    account = services.registrar.register(
        AccountDraft(
            external_id=body.external_id,
            name=body.name,
            surname=body.surname,
            email=body.email,
            role=body.role,
            gpn=body.gpn,
        )
    )
    return AccountResponse.from_account(account)


@router.post("/accounts/verify", response_model=MessageResponse)
def verify(body: VerificationRequest, services: AccountServices = Depends(get_services)) -> JSONResponse:
    """Approve or reject a pending account with the token from the admin email."""
    if services.verification.verify(body.account_id, body.token, body.approve):
        return JSONResponse(content={"message": "User verification processed successfully."})
    return JSONResponse(
        status_code=400,
        content={"error": {"code": "invalid_token", "message": "Invalid verification token or user ID."}},
    )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/accounts/request-password-reset", response_model=MessageResponse)
def request_password_reset(
    body: PasswordResetRequest, services: AccountServices = Depends(get_services)
) -> MessageResponse:
    """Always 200 with the same body, whether or not the email is known."""
    services.resets.request_reset(body.email)
    return MessageResponse(message=_RESET_REQUESTED)


@router.post("/accounts/reset-password", response_model=MessageResponse)
def reset_password(body: PasswordResetCompletion, services: AccountServices = Depends(get_services)) -> JSONResponse:
    """Set a new password with a reset token (from email or from a first-login response)."""
    if services.resets.complete_reset(body.account_id, body.token, body.new_password):
        return JSONResponse(content={"message": "Password reset successfully."})
    return JSONResponse(
        status_code=400,
        content={"error": {"code": "invalid_token", "message": "Invalid reset token or user ID."}},
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/accounts/authenticate", response_model=AuthResponse)
def authenticate(request: Request, body: LoginRequest) -> JSONResponse:
    """Password login.

    Returns a session token, or -- on an account's first login -- a reset
    token with password_change_required=true and no session.
    """
    services: AccountServices = request.app.state.services
    try:
        result = services.sessions.authenticate(body.email, body.password)
    except AuthenticationError as exc:
        code, message = _LOGIN_FAILURES.get(exc.reason, _BAD_CREDENTIALS)
        resp = JSONResponse(status_code=401, content={"error": {"code": code, "message": message}})
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp
    return _auth_response(result, services)


@router.post("/accounts/google-auth", response_model=AuthResponse)
def google_auth(body: GoogleAuthRequest, services: AccountServices = Depends(get_services)) -> JSONResponse:
    """Google ID-token login. Creates the account on first use."""
    result = services.federated.authenticate_with_google(body.id_token)
    return _auth_response(result, services)


# ---------------------------------------------------------------------------
# Authenticated reads
# ---------------------------------------------------------------------------


@router.get("/accounts/me", response_model=AccountResponse)
def me(current: Account = Depends(get_current_account)) -> AccountResponse:
    return AccountResponse.from_account(current)


@router.get("/accounts/pending-verifications", response_model=list[PendingAccountResponse])
def pending_verifications(
    _admin: Account = Depends(require_admin), services: AccountServices = Depends(get_services)
) -> list[PendingAccountResponse]:
    """Accounts awaiting review, with the token an admin needs to decide on them."""
    return [PendingAccountResponse.from_account(a) for a in services.list_pending_verifications()]


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int, _admin: Account = Depends(require_admin), services: AccountServices = Depends(get_services)
) -> AccountResponse:
    return AccountResponse.from_account(services.get_account(account_id))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _auth_response(result: AuthResult, services: AccountServices) -> JSONResponse:
    resp = JSONResponse(content=AuthResponse.from_result(result).model_dump())
    if result.session_token:
        set_session_cookie(resp, result.session_token, secure=services.settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
