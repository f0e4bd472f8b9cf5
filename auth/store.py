"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, guard and token code never touches SQL directly.

The token codec only needs get_by_snowflake(); login needs get_by_username().
Everything else here serves the user-management routes and the CLI.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from auth.models import User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("snowflake", String(20), nullable=False, unique=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL = no password login
    Column("secret", String(128), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_UPDATABLE = frozenset({"username", "hashed_password", "secret"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        store.create_user(User(username="ada", snowflake="1", secret="ab" * 32))
        user = store.get_by_snowflake("1")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        kwargs: dict = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in db_url:
                # One shared connection, otherwise every pooled connection
                # would see its own empty in-memory database.
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **kwargs)
        if db_url.startswith("sqlite") and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or snowflake
        already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    snowflake=user.snowflake,
                    username=user.username,
                    hashed_password=user.hashed_password,
                    secret=user.secret,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, snowflake: str, /, **fields) -> bool:
        """Update mutable fields. Returns False if no such user exists.

        Accepted fields: username, hashed_password, secret. Unknown fields
        raise ValueError rather than being silently dropped.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.snowflake == snowflake).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def rotate_secret(self, snowflake: str, secret: str) -> bool:
        """Replace a user's signing secret, revoking every token issued so far."""
        return self.update_user(snowflake, secret=secret)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_snowflake(self, snowflake: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.snowflake == snowflake)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        snowflake=row.snowflake,
        username=row.username,
        hashed_password=row.hashed_password,
        secret=row.secret,
        created_at=row.created_at,
    )
