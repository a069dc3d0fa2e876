"""
auth/store.py -- SQLAlchemy Core persistence layer for membership entities.

Pattern: Repository + Data Mapper. AccountStore is the repository; the
_row_to_* functions are the mappers. Service and route code never touches SQL
directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Invariants the store owns:
  password_hash present <=> salt row exists. replace_credentials() writes
  both in one transaction, so a crash between "rotate salt" and "store hash"
  cannot leave an account whose hash was computed under a discarded salt.

  One live salt per account and at most one pending verification request per
  account: UNIQUE(account_id) on both tables.

  Deleting an account cascades to its salt and verification request
  (ON DELETE CASCADE; SQLite needs PRAGMA foreign_keys=ON per connection).

Concurrency:
  replace_credentials(expected_salt=...) is a compare-and-swap on the salt
  value. Two concurrent password changes that both read the same salt cannot
  both win; the loser sees False and writes nothing.

Layer rule: no imports from api/, notify/, or blobs/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account, Role, Salt, VerificationRequest

_DEFAULT_DB_URL = "sqlite:///memberauth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL = needs migration from legacy auth
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("verified", Integer, nullable=False, server_default="0"),
    Column("year_of_birth", Integer),
    Column("gender", String(30)),
    Column("enrolled_year", Integer),
    Column("major", String(255)),
    Column("profile_image_url", Text),
    Column("kakao_talk_id", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_salts = Table(
    "salts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "account_id",
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("salt", Text, nullable=False),
)

_verifications = Table(
    "verification_requests",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "account_id",
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("file_url", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_account() may touch. Credentials go through
# replace_credentials() only.
_MUTABLE_ACCOUNT_FIELDS = {
    "name",
    "email_verified",
    "verified",
    "year_of_birth",
    "gender",
    "enrolled_year",
    "major",
    "profile_image_url",
    "kakao_talk_id",
    "role_id",
}


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection and not inherited from the pool, and
    foreign key enforcement (hence ON DELETE CASCADE) is off by default.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Role, Account, Salt and VerificationRequest entities.

    Usage:
        store = AccountStore("sqlite:///memberauth.db")
        store.ensure_roles(["Admin", "Member"])
        account_id = store.create_account(Account(name="A", email="a@x.com", role_id=2))
        store.replace_credentials(account_id, salt, password_hash)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def ensure_roles(self, names: list[str]) -> None:
        """Insert any role in names that does not exist yet. Idempotent."""
        with self.engine.begin() as conn:
            existing = {r.name for r in conn.execute(select(_roles.c.name)).fetchall()}
            for name in names:
                if name not in existing:
                    conn.execute(_roles.insert().values(name=name))

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return Role(id=row.id, name=row.name) if row is not None else None

    def get_role_by_id(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return Role(id=row.id, name=row.name) if row is not None else None

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The password hash is never written here; see replace_credentials().
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    name=account.name,
                    email=account.email,
                    role_id=account.role_id,
                    email_verified=1 if account.email_verified else 0,
                    verified=1 if account.verified else 0,
                    year_of_birth=account.year_of_birth,
                    gender=account.gender,
                    enrolled_year=account.enrolled_year,
                    major=account.major,
                    profile_image_url=account.profile_image_url,
                    kakao_talk_id=account.kakao_talk_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_account_by_email(self, email: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def count_accounts(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return result or 0

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable profile/flag fields. Returns False if account_id is unknown.

        Unknown field names raise ValueError rather than being ignored.
        """
        unknown = set(fields) - _MUTABLE_ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown or immutable account fields: {unknown!r}")
        for flag in ("email_verified", "verified"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
        return result.rowcount > 0

    def delete_account(self, account_id: int) -> bool:
        """Delete an account. Its salt and verification request go with it (cascade)."""
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Salts / credentials
    # ------------------------------------------------------------------

    def get_salt(self, account_id: int) -> Salt | None:
        with self.engine.connect() as conn:
            row = conn.execute(_salts.select().where(_salts.c.account_id == account_id)).fetchone()
        return Salt(id=row.id, account_id=row.account_id, value=row.salt) if row is not None else None

    def replace_credentials(
        self,
        account_id: int,
        salt: str,
        password_hash: str,
        expected_salt: str | None = None,
    ) -> bool:
        """Rotate the account's salt and store the matching hash atomically.

        expected_salt=None: unconditional replace (signup, admin reset,
            recovery). Any previous salt row is discarded.
        expected_salt=<value>: compare-and-swap. The salt is only rotated if
            it still equals the value the caller verified against. Returns
            False, writing nothing, if another writer got there first.
        """
        with self.engine.begin() as conn:
            if expected_salt is not None:
                swapped = conn.execute(
                    _salts.update()
                    .where((_salts.c.account_id == account_id) & (_salts.c.salt == expected_salt))
                    .values(salt=salt)
                )
                if swapped.rowcount == 0:
                    return False
            else:
                conn.execute(_salts.delete().where(_salts.c.account_id == account_id))
                conn.execute(_salts.insert().values(account_id=account_id, salt=salt))
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(password_hash=password_hash, updated_at=_now_iso())
            )
        return True

    # ------------------------------------------------------------------
    # Verification requests
    # ------------------------------------------------------------------

    def upsert_verification_request(self, account_id: int, file_url: str) -> int:
        """Create the account's pending request, or replace its document URL.

        Re-submission bumps updated_at so the request moves to the top of the
        review queue.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            row = conn.execute(
                select(_verifications.c.id).where(_verifications.c.account_id == account_id)
            ).fetchone()
            if row is not None:
                conn.execute(
                    _verifications.update()
                    .where(_verifications.c.id == row.id)
                    .values(file_url=file_url, updated_at=now)
                )
                return row.id
            result = conn.execute(
                _verifications.insert().values(
                    account_id=account_id,
                    file_url=file_url,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_verification_request(self, request_id: int) -> VerificationRequest | None:
        with self.engine.connect() as conn:
            row = conn.execute(_verifications.select().where(_verifications.c.id == request_id)).fetchone()
        return _row_to_verification(row) if row is not None else None

    def list_verification_requests(self) -> list[VerificationRequest]:
        """Return all pending requests, most recently updated first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _verifications.select().order_by(_verifications.c.updated_at.desc(), _verifications.c.id.desc())
            ).fetchall()
        return [_row_to_verification(r) for r in rows]

    def take_verification_request(self, request_id: int) -> VerificationRequest | None:
        """Delete a request and return it, or None if it was already gone.

        The DELETE's rowcount decides the winner when two reviewers act on
        the same request at once; only one caller gets the request back.
        """
        with self.engine.begin() as conn:
            row = conn.execute(_verifications.select().where(_verifications.c.id == request_id)).fetchone()
            if row is None:
                return None
            deleted = conn.execute(_verifications.delete().where(_verifications.c.id == request_id))
            if deleted.rowcount == 0:
                return None
        return _row_to_verification(row)

    def approve_verification_request(self, request_id: int) -> Account | None:
        """Set verified=True on the owner and delete the request, atomically.

        Returns the updated account, or None if the request no longer exists
        (already approved or denied).
        """
        with self.engine.begin() as conn:
            row = conn.execute(_verifications.select().where(_verifications.c.id == request_id)).fetchone()
            if row is None:
                return None
            deleted = conn.execute(_verifications.delete().where(_verifications.c.id == request_id))
            if deleted.rowcount == 0:
                return None
            conn.execute(
                _accounts.update().where(_accounts.c.id == row.account_id).values(verified=1, updated_at=_now_iso())
            )
            account_row = conn.execute(_accounts.select().where(_accounts.c.id == row.account_id)).fetchone()
        return _row_to_account(account_row) if account_row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role_id=row.role_id,
        email_verified=bool(row.email_verified),
        verified=bool(row.verified),
        year_of_birth=row.year_of_birth,
        gender=row.gender,
        enrolled_year=row.enrolled_year,
        major=row.major,
        profile_image_url=row.profile_image_url,
        kakao_talk_id=row.kakao_talk_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_verification(row) -> VerificationRequest:
    return VerificationRequest(
        id=row.id,
        account_id=row.account_id,
        file_url=row.file_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
