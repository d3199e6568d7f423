"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

Two carriers are checked in priority order:
  1. JWT cookie ("access_token") -- set by the web front end after login.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on an Account after the session token verifies and the account
still exists and is enabled. The role used for authorization is the one in
the store, not the one in the token, so a demoted admin loses access at once.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_account() and raises HTTP 403 if not Admin.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Account, Role
from auth.service import AccountServices
from auth.tokens import decode_session_token


def get_services(request: Request) -> AccountServices:
    return request.app.state.services


def try_get_current_account(request: Request) -> Account | None:
    """Authenticate the request via cookie or Bearer header. Never raises."""
    services: AccountServices = request.app.state.services

    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    if not token:
        return None

    payload = decode_session_token(token, services.settings.secret_key)
    if payload is None:
        return None
    try:
        account_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None

    account = services.store.get_by_id(account_id)
    if account is None or not account.enabled:
        return None
    return account


def get_current_account(request: Request) -> Account:
    """Require a valid session. Raises HTTP 401 otherwise."""
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return account


def require_admin(request: Request) -> Account:
    """Require the Admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not Admin."""
    account = get_current_account(request)
    if account.role is not Role.ADMIN:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return account
