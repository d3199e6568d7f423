"""
auth/tokens.py -- Password hashing, opaque tokens, and signed session tokens.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). Each call salts
       afresh, so hashing the same input twice yields two different hashes.
       The cost factor comes from Settings.bcrypt_rounds.

  Opaque tokens: secrets.token_hex(16) -- 128 bits of entropy as 32 hex
       chars. Used for admin verification and password reset. Each is wrapped
       in an ExpiringToken with a fixed TTL; expiry is checked lazily at the
       point of use, there is no background sweep.

  Session tokens: python-jose with HS256. Claims are exactly sub (account id),
       email, role, plus exp. Verification returns None on any failure --
       bad signature, altered payload, expired, or missing claims.

  Timing equalization [C1]: authenticate() always runs one bcrypt check even
       when the email is unknown, against a dummy hash of the same cost.

Layer rule: no imports from api/ or notify/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from urllib.parse import urlencode

import bcrypt
from jose import JWTError, jwt

from auth.models import ExpiringToken

logger = logging.getLogger("expensegate.auth.tokens")

_ALGORITHM = "HS256"
_DEFAULT_ROUNDS = 12

# Fixed lifetimes. These are implementation constants, not configuration.
VERIFICATION_TOKEN_TTL = timedelta(hours=48)
APPROVAL_RESET_TOKEN_TTL = timedelta(days=7)
RESET_TOKEN_TTL = timedelta(hours=24)
SESSION_TOKEN_TTL = timedelta(days=7)

_SESSION_CLAIMS = ("sub", "email", "role")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = _DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API caps passwords at 100
    characters and the throwaway passwords generated here are far shorter.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed stored hash is a
    failed verification, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=8)
def dummy_hash(rounds: int = _DEFAULT_ROUNDS) -> str:
    """Hash used to equalize timing when no account matches [C1].

    Cached per cost factor so the check costs the same as a real one.
    """
    return hash_password("expensegate_timing_dummy", rounds=rounds)


def generate_throwaway_password() -> str:
    """A random password nobody is ever told. Only its hash is stored."""
    return secrets.token_urlsafe(24)


# ---------------------------------------------------------------------------
# Opaque single-use tokens
# ---------------------------------------------------------------------------


def generate_opaque_token() -> str:
    """32 hex chars of cryptographic randomness."""
    return secrets.token_hex(16)


def issue_token(ttl: timedelta, now: datetime | None = None) -> ExpiringToken:
    """Create a fresh opaque token that expires ttl from now."""
    issued_at = now or utcnow()
    return ExpiringToken(value=generate_opaque_token(), expires_at=issued_at + ttl)


def token_matches(stored: ExpiringToken | None, candidate: str, now: datetime | None = None) -> bool:
    """True when candidate equals the stored token value and it has not expired.

    Every failure mode (no token, wrong value, expired) yields the same False.
    """
    if stored is None or not candidate:
        return False
    same = hmac.compare_digest(stored.value.encode("utf-8"), candidate.encode("utf-8"))
    return same and stored.expires_at >= (now or utcnow())


def token_link(base_url: str, path: str, token: str, account_id: int) -> str:
    """Build an emailed link such as {base}/reset-password?token=...&userId=42."""
    query = urlencode({"token": token, "userId": account_id})
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}?{query}"


# ---------------------------------------------------------------------------
# Session tokens (JWT)
# ---------------------------------------------------------------------------


def create_session_token(claims: dict, secret: str, ttl: timedelta = SESSION_TOKEN_TTL) -> str:
    """Encode a signed HS256 JWT from exactly the sub/email/role claims plus exp.

    sub is coerced to str -- RFC 7519 requires the subject to be a string and
    python-jose rejects anything else on decode.
    """
    missing = [c for c in _SESSION_CLAIMS if c not in claims]
    if missing:
        raise ValueError(f"Session claims missing: {missing}")
    payload = {
        "sub": str(claims["sub"]),
        "email": claims["email"],
        "role": claims["role"],
        "exp": utcnow() + ttl,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_session_token(token: str, secret: str) -> dict | None:
    """Decode and verify a session JWT. Returns the claims dict or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token is treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if any(c not in payload for c in _SESSION_CLAIMS):
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, secure: bool = False) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    max_age matches the session token lifetime so both expire together.
    """
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=int(SESSION_TOKEN_TTL.total_seconds()),
    )
