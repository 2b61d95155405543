"""
auth/store.py -- SQLAlchemy Core persistence layer for credentials.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_credential is the mapper.
Route and service code never touches SQL directly.

One table holds both users and admins; the role column tells them apart.
email is UNIQUE and stored normalized; mobile_number is UNIQUE but nullable
(admins may not have one -- SQL treats NULLs as distinct).

Session versions:
  session_version is a 64-bit counter (BigInteger). increment_session_version()
  bumps it with a single UPDATE ... SET session_version = session_version + 1,
  so concurrent bumps never lose an increment. It is never decremented or
  reset; tokens stamped with an older value stay dead forever.

Security:
  All queries use bound parameters. No f-strings in SQL.
  update_profile() accepts only whitelisted column names.

DB path: auth/docdesk_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    or_,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import Conflict
from auth.identity import is_email_identity, normalize_email
from auth.models import Credential

logger = logging.getLogger("docdesk.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'docdesk_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_credentials = Table(
    "credentials",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("email", String(255), nullable=False, unique=True),
    Column("mobile_number", String(10), unique=True),
    Column("password_hash", Text),
    Column("session_version", BigInteger, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("village_city", String(120)),
    Column("pincode", String(6)),
    Column("state", String(80)),
    Column("district", String(80)),
    Column("taluka", String(80)),
    Column("dob", String(10)),
    Column("admin_home_desc", Text),
    Column("admin_home_image", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

# Columns update_profile() may touch. Identity columns are included; the
# UNIQUE constraints turn a collision into Conflict.
_PROFILE_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "email",
        "mobile_number",
        "village_city",
        "pincode",
        "state",
        "district",
        "taluka",
        "dob",
        "admin_home_desc",
        "admin_home_image",
        "is_active",
        "password_hash",
    }
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _identity_clause(key: str):
    key = str(key or "").strip()
    if is_email_identity(key):
        return _credentials.c.email == normalize_email(key)
    return _credentials.c.mobile_number == key


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Credential records.

    Usage:
        store = CredentialStore()
        store.create(Credential(email="a@example.com", role="user", password_hash=hash_password("s3cret")))
        cred = store.find_by_identity("a@example.com")
        store.increment_session_version("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Identity-keyed operations
    # ------------------------------------------------------------------

    def find_by_identity(self, key: str) -> Credential | None:
        """Look up by email (case-insensitive) or mobile number. None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_credentials.select().where(_identity_clause(key))).fetchone()
        return _row_to_credential(row) if row is not None else None

    def create(self, credential: Credential) -> Credential:
        """Insert a new credential and return it as stored.

        Raises Conflict if the email or mobile number is already registered.
        The UNIQUE constraints are the source of truth; callers' pre-checks
        only give a friendlier early answer.
        """
        values = {
            "role": credential.role,
            "email": normalize_email(credential.email),
            "mobile_number": (credential.mobile_number or "").strip() or None,
            "password_hash": credential.password_hash,
            "session_version": credential.session_version,
            "is_active": 1 if credential.is_active else 0,
            "first_name": credential.first_name,
            "last_name": credential.last_name,
            "village_city": credential.village_city,
            "pincode": credential.pincode,
            "state": credential.state,
            "district": credential.district,
            "taluka": credential.taluka,
            "dob": credential.dob,
            "admin_home_desc": credential.admin_home_desc,
            "admin_home_image": credential.admin_home_image,
            "created_at": _now_iso(),
        }
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_credentials.insert().values(**values))
                conn.commit()
                new_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise Conflict("Email or Mobile already registered") from exc
        logger.info("Credential created (id=%s, role=%s)", new_id, credential.role)
        created = self.get_by_id(new_id)
        if created is None:
            raise RuntimeError("credential vanished after insert")
        return created

    def update_password_hash(self, key: str, password_hash: str) -> bool:
        """Replace the password hash. Returns False if the identity does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _credentials.update()
                .where(_identity_clause(key))
                .values(password_hash=password_hash, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def increment_session_version(self, key: str) -> int | None:
        """Atomically bump session_version. Returns the new value, or None if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _credentials.update()
                .where(_identity_clause(key))
                .values(session_version=_credentials.c.session_version + 1, updated_at=_now_iso())
            )
            if result.rowcount == 0:
                conn.rollback()
                return None
            version = conn.execute(
                _credentials.select().with_only_columns(_credentials.c.session_version).where(_identity_clause(key))
            ).scalar()
            conn.commit()
        return int(version)

    def set_active(self, key: str, active: bool) -> bool:
        """Enable or disable an account. Returns False if the identity does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _credentials.update()
                .where(_identity_clause(key))
                .values(is_active=1 if active else 0, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Id-keyed operations (account management)
    # ------------------------------------------------------------------

    def get_by_id(self, credential_id: int) -> Credential | None:
        with self.engine.connect() as conn:
            row = conn.execute(_credentials.select().where(_credentials.c.id == credential_id)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def list_credentials(self, role: str) -> list[Credential]:
        """Return every credential with the given role, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _credentials.select().where(_credentials.c.role == role).order_by(_credentials.c.id.desc())
            ).fetchall()
        return [_row_to_credential(r) for r in rows]

    def identity_taken(self, email: str | None, mobile_number: str | None, exclude_id: int | None = None) -> bool:
        """Return True if another record already uses email or mobile_number."""
        clauses = []
        if email:
            clauses.append(_credentials.c.email == normalize_email(email))
        if mobile_number:
            clauses.append(_credentials.c.mobile_number == str(mobile_number).strip())
        if not clauses:
            return False
        query = _credentials.select().with_only_columns(_credentials.c.id).where(or_(*clauses))
        if exclude_id is not None:
            query = query.where(_credentials.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query.limit(1)).fetchone() is not None

    def update_profile(self, credential_id: int, **fields) -> Credential | None:
        """Update whitelisted columns on one record.

        Unknown field names raise ValueError. is_active must be passed as bool.
        Raises Conflict if a new email or mobile number collides. Returns the
        updated Credential, or None if credential_id was not found.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown credential fields: {sorted(unknown)!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if fields.get("email"):
            fields["email"] = normalize_email(fields["email"])
        fields["updated_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _credentials.update().where(_credentials.c.id == credential_id).values(**fields)
                )
                conn.commit()
        except IntegrityError as exc:
            raise Conflict("Email or Mobile already exists") from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(credential_id)

    def delete(self, credential_id: int) -> bool:
        """Permanently delete a record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_credentials.delete().where(_credentials.c.id == credential_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(_credentials.select().with_only_columns(_credentials.c.id).limit(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        id=row.id,
        role=row.role,
        email=row.email,
        mobile_number=row.mobile_number,
        password_hash=row.password_hash,
        session_version=int(row.session_version or 0),
        is_active=bool(row.is_active),
        first_name=row.first_name,
        last_name=row.last_name,
        village_city=row.village_city,
        pincode=row.pincode,
        state=row.state,
        district=row.district,
        taluka=row.taluka,
        dob=row.dob,
        admin_home_desc=row.admin_home_desc,
        admin_home_image=row.admin_home_image,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
