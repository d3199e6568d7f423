"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _account_values are the mappers. Lifecycle components and
routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is case-insensitive because every write and every lookup
  goes through normalize_email() and the column carries a UNIQUE constraint
  on the normalized value. IntegrityError from a racing insert is translated
  into ConflictError, the same error the pre-insert check raises.

  Single-use tokens are consumed with one conditional UPDATE/DELETE whose
  WHERE clause names the current token value and requires it unexpired.
  Two concurrent callers holding the same token cannot both see rowcount 1,
  so a verification or reset token can never be spent twice [R1].

  federated_subject uniqueness is enforced in code (link_federated only
  writes where the column is still NULL). SQLite treats NULLs as distinct in
  UNIQUE constraints, which would be no help for unlinked rows anyway.

Timestamps are fixed-width ISO-8601 UTC strings with microseconds, so SQL
string comparison (expires_at >= :now) is chronological comparison.

Layer rule: no imports from api/ or notify/. core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account, ExpiringToken, Role
from core.config import get_settings
from core.errors import ConflictError

logger = logging.getLogger("expensegate.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("external_id", String(50), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("surname", String(100), nullable=False),
    Column("email", String(100), nullable=False, unique=True),  # normalized
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.USER.value),
    Column("gpn", String(50), nullable=False, server_default=""),
    Column("enabled", Boolean, nullable=False, server_default="0"),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("is_first_login", Boolean, nullable=False, server_default="1"),
    Column("verification_token", String(64)),
    Column("verification_expires_at", String(32)),
    Column("reset_token", String(64)),
    Column("reset_expires_at", String(32)),
    Column("federated_subject", String(255)),  # Google "sub" claim
    Column("profile_image_path", Text),
    Column("profile_image_filename", Text),
    Column("profile_image_content_type", String(100)),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return email.strip().lower()


def to_iso(moment: datetime) -> str:
    """Fixed-width UTC ISO timestamp, e.g. 2026-01-02T03:04:05.000000+00:00."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def _token_pair(value: str | None, expires_at: str | None) -> ExpiringToken | None:
    if value is None or expires_at is None:
        return None
    return ExpiringToken(value=value, expires_at=_from_iso(expires_at))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account = store.add(Account(external_id="u1", name="Ada", surname="L",
                                    email="Ada@X.com", password_hash=hash_password("...")))
        store.get_by_email("ada@x.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def get_by_id(self, account_id: int) -> Account | None:
        return self._fetch_one(_accounts.c.id == account_id)

    def get_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup: the argument is normalized like the stored value."""
        return self._fetch_one(_accounts.c.email == normalize_email(email))

    def get_by_external_id(self, external_id: str) -> Account | None:
        return self._fetch_one(_accounts.c.external_id == external_id.strip())

    def get_by_federated_id(self, subject: str) -> Account | None:
        return self._fetch_one(_accounts.c.federated_subject == subject)

    def list_by_role(self, role: Role) -> list[Account]:
        """Return every account holding the given role, ordered by id."""
        return self._fetch_all(_accounts.c.role == Role.parse(role).value)

    def list_pending_verification(self) -> list[Account]:
        """Accounts an administrator has not yet approved or rejected."""
        return self._fetch_all(
            (_accounts.c.email_verified.is_(False)) & (_accounts.c.verification_token.is_not(None))
        )

    def list_accounts(self) -> list[Account]:
        return self._fetch_all(None)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, account: Account) -> Account:
        """Insert a new account and return it with its assigned id and created_at.

        Raises ConflictError if the email or external id is already taken --
        including when a concurrent request inserted it between the caller's
        uniqueness check and this insert.
        """
        values = _account_values(account)
        values["created_at"] = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_accounts.insert().values(**values))
                new_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise ConflictError("An account with that email or external id already exists.") from exc
        return self.get_by_id(new_id)

    def update(self, account: Account) -> bool:
        """Write every mutable field of account back to its row.

        Returns True if a row was updated, False if the id was not found.
        Raises ConflictError if the new email or external id collides.
        """
        if account.id is None:
            raise ValueError("Cannot update an account without an id")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _accounts.update().where(_accounts.c.id == account.id).values(**_account_values(account))
                )
        except IntegrityError as exc:
            raise ConflictError("An account with that email or external id already exists.") from exc
        return result.rowcount > 0

    def delete(self, account_id: int) -> bool:
        """Permanently delete an account. Returns True if deleted, False if not found."""
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    def set_reset_token(self, account_id: int, token: ExpiringToken) -> bool:
        """Replace whatever reset token the account holds with a fresh one."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(reset_token=token.value, reset_expires_at=to_iso(token.expires_at))
            )
        return result.rowcount > 0

    def link_federated(self, account_id: int, subject: str) -> bool:
        """Attach an external subject id to an account that has none yet."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.federated_subject.is_(None)))
                .values(federated_subject=subject)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Conditional token consumption [R1]
    # ------------------------------------------------------------------

    def approve_pending(self, account_id: int, token: str, now: datetime, reset_token: ExpiringToken) -> bool:
        """Pending -> approved in one statement, keyed on the current verification token.

        Clears the verification token, marks the email verified, and stores
        the reset token the approved user will spend to set a password.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_pending_clause(account_id, token, now))
                .values(
                    email_verified=True,
                    verification_token=None,
                    verification_expires_at=None,
                    reset_token=reset_token.value,
                    reset_expires_at=to_iso(reset_token.expires_at),
                )
            )
        return result.rowcount == 1

    def delete_pending(self, account_id: int, token: str, now: datetime) -> bool:
        """Pending -> deleted in one statement, keyed on the current verification token."""
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.delete().where(_pending_clause(account_id, token, now)))
        return result.rowcount == 1

    def complete_reset(self, account_id: int, token: str, now: datetime, password_hash: str) -> bool:
        """Spend a reset token: store the new hash, clear the token, activate the account.

        Only an approved account qualifies; a row still awaiting review keeps
        its state until the admin gate decides.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(
                    (_accounts.c.id == account_id)
                    & (_accounts.c.reset_token == token)
                    & (_accounts.c.reset_expires_at >= to_iso(now))
                    & (_accounts.c.email_verified.is_(True))
                    & (_accounts.c.verification_token.is_(None))
                )
                .values(
                    password_hash=password_hash,
                    reset_token=None,
                    reset_expires_at=None,
                    enabled=True,
                    is_first_login=False,
                )
            )
        return result.rowcount == 1

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fetch_one(self, clause) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(clause)).fetchone()
        return _row_to_account(row) if row is not None else None

    def _fetch_all(self, clause) -> list[Account]:
        query = _accounts.select().order_by(_accounts.c.id)
        if clause is not None:
            query = query.where(clause)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_account(r) for r in rows]


def _pending_clause(account_id: int, token: str, now: datetime):
    return (
        (_accounts.c.id == account_id)
        & (_accounts.c.verification_token == token)
        & (_accounts.c.verification_expires_at >= to_iso(now))
        & (_accounts.c.email_verified.is_(False))
        & (_accounts.c.enabled.is_(False))
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _account_values(account: Account) -> dict:
    verification = account.verification_token
    reset = account.reset_token
    return {
        "external_id": account.external_id.strip(),
        "name": account.name,
        "surname": account.surname,
        "email": normalize_email(account.email),
        "password_hash": account.password_hash,
        "role": Role.parse(account.role).value,
        "gpn": account.gpn or "",
        "enabled": account.enabled,
        "email_verified": account.email_verified,
        "is_first_login": account.is_first_login,
        "verification_token": verification.value if verification else None,
        "verification_expires_at": to_iso(verification.expires_at) if verification else None,
        "reset_token": reset.value if reset else None,
        "reset_expires_at": to_iso(reset.expires_at) if reset else None,
        "federated_subject": account.federated_subject,
        "profile_image_path": account.profile_image_path,
        "profile_image_filename": account.profile_image_filename,
        "profile_image_content_type": account.profile_image_content_type,
    }


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        external_id=row.external_id,
        name=row.name,
        surname=row.surname,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        gpn=row.gpn,
        enabled=bool(row.enabled),
        email_verified=bool(row.email_verified),
        is_first_login=bool(row.is_first_login),
        verification_token=_token_pair(row.verification_token, row.verification_expires_at),
        reset_token=_token_pair(row.reset_token, row.reset_expires_at),
        federated_subject=row.federated_subject,
        profile_image_path=row.profile_image_path,
        profile_image_filename=row.profile_image_filename,
        profile_image_content_type=row.profile_image_content_type,
        created_at=row.created_at,
    )
