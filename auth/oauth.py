"""
auth/oauth.py -- Google ID-token validation for federated login.

The browser obtains a Google ID token (Google Identity Services) and posts it
to /api/v1/accounts/google-auth. This module verifies it server-side with
google-auth: signature against Google's published certificates, issuer,
expiry, and audience == Settings.google_client_id.

Security notes:
  [H1] Email verification is mandatory. A token whose email_verified claim is
       not true is rejected -- an unverified address could belong to someone
       else, and federated login trusts the email in lieu of admin approval.

  Provider error text is not passed through to the caller. It goes to the log;
  the caller sees one generic AuthenticationError.

Layer rule: no imports from api/ or notify/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import Protocol

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from auth.models import FederatedIdentity
from core.errors import AuthenticationError, ExternalServiceError

logger = logging.getLogger("expensegate.auth.oauth")

# Tolerate small clock differences between this server and Google.
_CLOCK_SKEW_SECONDS = 60


class IdentityValidator(Protocol):
    def validate(self, token: str, expected_audience: str) -> FederatedIdentity: ...


class GoogleIdentityValidator:
    """IdentityValidator backed by google.oauth2.id_token.

    The transport Request wraps a requests.Session, which google-auth also
    uses to cache Google's signing certificates between calls.
    """

    def __init__(self, request: google_requests.Request | None = None) -> None:
        self._request = request or google_requests.Request()

    def validate(self, token: str, expected_audience: str) -> FederatedIdentity:
        """Verify token and return its identity claims.

        Raises:
            ExternalServiceError: federated login is not configured, or Google's
                certificate endpoint could not be reached.
            AuthenticationError: the token is invalid, aimed at another client,
                expired, or its email is not verified.
        """
        if not expected_audience:
            raise ExternalServiceError("Google sign-in is not configured.")
        if not token:
            raise AuthenticationError("Invalid Google ID token.", reason="invalid_token")

        try:
            claims = id_token.verify_oauth2_token(
                token,
                self._request,
                expected_audience,
                clock_skew_in_seconds=_CLOCK_SKEW_SECONDS,
            )
        except google_exceptions.TransportError as exc:
            logger.error("Google certificate fetch failed: %s", exc)
            raise ExternalServiceError("Google sign-in is temporarily unavailable.") from exc
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            logger.info("Rejected Google ID token: %s", exc)
            raise AuthenticationError("Invalid Google ID token.", reason="invalid_token") from exc

        return identity_from_claims(claims)


def identity_from_claims(claims: dict) -> FederatedIdentity:
    """Map verified Google ID-token claims onto a FederatedIdentity [H1]."""
    if claims.get("email_verified") is not True:
        raise AuthenticationError("Google account email is not verified.", reason="unverified_email")

    email = claims.get("email")
    subject_id = claims.get("sub")
    if not email or not subject_id:
        raise AuthenticationError("Google ID token is missing email or sub.", reason="invalid_token")

    return FederatedIdentity(
        email=str(email),
        given_name=str(claims.get("given_name") or ""),
        family_name=str(claims.get("family_name") or ""),
        subject_id=str(subject_id),
    )
