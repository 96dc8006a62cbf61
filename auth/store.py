"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. The identity resolver never touches SQL directly.

Uniqueness: uid, username, phone and email all carry UNIQUE constraints.
Two concurrent registrations for the same username both pass the resolver's
availability check, but only one INSERT survives; the other raises
sqlalchemy.exc.IntegrityError, which auth.identity maps to ConflictError.
SQLite treats NULLs as distinct in UNIQUE constraints, so any number of
accounts may have no phone or no email.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: auth/photoauth_users.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("uid", String(64), nullable=False, unique=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("phone", String(16), unique=True),  # NULL for password-path accounts
    Column("email", String(255), unique=True),
    Column("hashed_password", Text),  # NULL for phone-only accounts
    Column("role", String(16), nullable=False, server_default="user"),
    Column("second_factor_secret", Text),  # admins only
    Column("banned", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(uid=new_uid(), username="ana", phone="15551234567"))
        user = store.get_by_phone("15551234567")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def create_user(self, user: User) -> User:
        """Insert a new user and return it as stored (id and created_at filled in).

        Raises sqlalchemy.exc.IntegrityError if uid, username, phone or email
        is already taken. Callers treat that as a lost race.
        """
        created_at = user.created_at or _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    uid=user.uid,
                    username=user.username,
                    phone=user.phone,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    second_factor_secret=user.second_factor_secret,
                    banned=1 if user.banned else 0,
                    created_at=created_at,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        return User(
            uid=user.uid,
            username=user.username,
            role=Role(user.role),
            phone=user.phone,
            email=user.email,
            hashed_password=user.hashed_password,
            second_factor_secret=user.second_factor_secret,
            banned=user.banned,
            created_at=created_at,
            id=user_id,
        )

    def get_by_uid(self, uid: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.uid == uid)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_phone(self, phone: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.phone == phone)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users in creation order."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def set_banned(self, uid: str, banned: bool) -> bool:
        """Set the banned flag. Returns True if a row was updated."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.uid == uid).values(banned=1 if banned else 0))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, uid: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        The uid is not recycled: new_uid() never produces a value twice.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.uid == uid))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        uid=row.uid,
        username=row.username,
        phone=row.phone,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        second_factor_secret=row.second_factor_secret,
        banned=bool(row.banned),
        created_at=row.created_at,
    )
