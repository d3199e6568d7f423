"""
api/limiter.py -- slowapi limiter shared by the app and the account routes.

api/main.py mounts it (SlowAPIMiddleware reads app.state.limiter) and
api/routes/v1/accounts.py decorates /authenticate with it. There must be
exactly one instance: the in-memory counters live on it.

Keyed by client IP. Behind a reverse proxy, run uvicorn with
--proxy-headers so request.client reflects the real caller.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Per-IP budget for password logins, e.g. "10/minute" (LOGIN_RATE_LIMIT).

    Resolved on each request so a settings cache reset takes effect.
    """
    return get_settings().login_rate_limit
