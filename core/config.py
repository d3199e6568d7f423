"""
core/config.py -- Runtime configuration for the account service.

Every environment variable the service honours is a field on Settings. Other
modules either call get_settings() or are handed a Settings instance (the
lifecycle components take one in their constructor, which is how tests inject
a low bcrypt cost and a fixed signing key).

How it is loaded:
  pydantic-settings maps each field to the upper-cased env var of the same
  name (bcrypt_rounds -> BCRYPT_ROUNDS), falling back to a .env file in the
  working directory, then to the default declared here.

  get_settings() is wrapped in lru_cache, so the environment is read once per
  process. Call get_settings.cache_clear() after changing os.environ.

Security notes:
  [M6] Session tokens are HS256-signed with SECRET_KEY; anything under 32
       characters is refused.

  [M7] Without DEBUG=true an absent SECRET_KEY stops the process at startup.
       With DEBUG=true a random key is generated, so sessions die on restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or notify/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("expensegate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'expensegate_accounts.db'}"


class Settings(BaseSettings):
    """Service settings. Every field has a default, so Settings() works in tests
    and on a developer machine with no .env at all (given DEBUG=true).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; check_secrets replaces it or refuses to start.
    secret_key: str = ""
    # Prefix for every link embedded in outbound email (verify / reset pages).
    base_url: str = "http://localhost:4200"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # Adaptive bcrypt cost. 12 is the production default; tests drop to 4.
    bcrypt_rounds: int = 12
    login_rate_limit: str = "10/minute"

    # Google ID tokens are audience-checked against this client id.
    # Empty string means federated login is disabled.
    google_client_id: str = ""

    # ------------------------------------------------------------------
    # Outbound email (empty smtp_host = log-only transport)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0
    sender_email: str = "no-reply@localhost"
    sender_name: str = "Expense Manager"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_secrets(self) -> "Settings":
        """Resolve SECRET_KEY [M7], then bound-check key length [M6] and bcrypt cost."""
        if not self.secret_key and not self.debug:
            raise ValueError(
                "SECRET_KEY is required unless DEBUG=true. "
                "Export it or add it to .env before starting the account service."
            )
        if not self.secret_key:
            self.secret_key = secrets.token_hex(32)
            logger.warning("DEBUG: generated a throwaway SECRET_KEY; sessions end when the process stops.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        self.base_url = self.base_url.rstrip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings, built from the environment on first call."""
    return Settings()
