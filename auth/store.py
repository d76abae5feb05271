"""
auth/store.py -- SQLAlchemy Core persistence for users and system config.

Pattern: Repository + Data Mapper. UserStore and SystemConfigStore are the
repositories; _row_to_user is the mapper. The auth core only sees them through
the Protocols in auth/repositories.py and never touches SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The single-admin invariant is backed by a partial unique index on
  is_admin = 1. AdminBootstrap checks get_admin() first; the index makes the
  check-then-create race lose with DuplicateUserError instead of producing two
  admins [M1].

DB path: auth/photovault_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateUserError, UserNotFoundError
from auth.models import User
from core.config import Settings, SystemConfig, build_system_config, get_settings

logger = logging.getLogger("photovault.auth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'photovault_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text),  # bcrypt hash; NULL for OAuth-only users
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("oauth_id", Text, nullable=False, server_default=""),  # provider subject
    Column("should_change_password", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# At most one row may have is_admin = 1 [M1].
Index(
    "uq_users_single_admin",
    _users.c.is_admin,
    unique=True,
    sqlite_where=_users.c.is_admin == 1,
    postgresql_where=_users.c.is_admin == 1,
)

_system_config = Table(
    "system_config",
    _metadata,
    Column("key", String(64), primary_key=True),
    Column("value", Text, nullable=False),  # JSON-encoded
)

_USER_FIELDS: frozenset[str] = frozenset(
    {"email", "password", "first_name", "last_name", "is_admin", "oauth_id", "should_change_password"}
)
_BOOL_FIELDS = ("is_admin", "should_change_password")


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str | None) -> Engine:
    url = db_url or get_settings().database_url or _DEFAULT_DB_URL
    kwargs: dict[str, Any] = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, so worker threads see the same database.
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_columns(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial user against the writable column whitelist."""
    unknown = set(fields) - _USER_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
    values = dict(fields)
    for name in _BOOL_FIELDS:
        if name in values:
            values[name] = 1 if values[name] else 0
    return values


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create({"email": "a@example.com", "password": hash_password("secret")})
        store.get_by_email("a@example.com", include_password=True)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = _make_engine(db_url)

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().limit(1)).fetchone()
        return row is not None

    def get(self, user_id: str) -> User | None:
        """Look up a user by primary key. The password hash is never loaded."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str, include_password: bool = False) -> User | None:
        """Look up a user by exact email. The hash is loaded only when asked for."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row, include_password=include_password) if row is not None else None

    def get_by_oauth_id(self, oauth_id: str) -> User | None:
        if not oauth_id:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.oauth_id == oauth_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_admin(self) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.is_admin == 1)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create(self, fields: Mapping[str, Any]) -> User:
        """Insert a new user and return it (without the password hash).

        Raises DuplicateUserError if the email is taken or a second admin is
        being created.
        """
        values = _to_columns(fields)
        if not values.get("email"):
            raise ValueError("email is required")
        now = _now_iso()
        user_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(_users.insert().values(id=user_id, created_at=now, updated_at=now, **values))
        except IntegrityError as exc:
            raise DuplicateUserError(f"User {values['email']!r} conflicts with an existing record") from exc
        logger.info("Created user id=%s admin=%s", user_id, bool(values.get("is_admin")))
        created = self.get(user_id)
        if created is None:  # pragma: no cover - the insert above committed
            raise UserNotFoundError(user_id)
        return created

    def update(self, user_id: str, fields: Mapping[str, Any]) -> User:
        """Apply a partial update and return the refreshed user.

        Raises UserNotFoundError if no row matches, DuplicateUserError on a
        unique violation (e.g. changing email to a taken one).
        """
        values = _to_columns(fields)
        values["updated_at"] = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
        except IntegrityError as exc:
            raise DuplicateUserError(f"Update of user {user_id!r} conflicts with an existing record") from exc
        if result.rowcount == 0:
            raise UserNotFoundError(user_id)
        updated = self.get(user_id)
        if updated is None:  # pragma: no cover - deleted between update and read
            raise UserNotFoundError(user_id)
        return updated

    def close(self) -> None:
        self.engine.dispose()


class SystemConfigStore:
    """Persists admin overrides on top of the environment Settings.

    The table is a plain key/value store (JSON values). get() always returns a
    fresh frozen SystemConfig; nothing is cached here so an update is visible
    to the very next request.
    """

    def __init__(self, db_url: str | None = None, settings: Settings | None = None) -> None:
        self.engine: Engine = _make_engine(db_url)
        self._settings = settings

    def _overrides(self) -> dict[str, Any]:
        with self.engine.connect() as conn:
            rows = conn.execute(_system_config.select()).fetchall()
        return {row.key: json.loads(row.value) for row in rows}

    def get(self) -> SystemConfig:
        return build_system_config(self._settings, self._overrides())

    def update(self, overrides: Mapping[str, Any]) -> SystemConfig:
        """Persist overrides and return the resulting snapshot.

        The merged snapshot is built before anything is written, so an unknown
        key or an invalid algorithm list raises ValueError with no partial write.
        """
        merged = {**self._overrides(), **overrides}
        config = build_system_config(self._settings, merged)
        with self.engine.begin() as conn:
            for key, value in overrides.items():
                encoded = json.dumps(list(value) if isinstance(value, tuple) else value)
                result = conn.execute(_system_config.update().where(_system_config.c.key == key).values(value=encoded))
                if result.rowcount == 0:
                    conn.execute(_system_config.insert().values(key=key, value=encoded))
        logger.info("System config updated (keys=%s)", sorted(overrides))
        return config

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, include_password: bool = False) -> User:
    return User(
        id=row.id,
        email=row.email,
        password=row.password if include_password else None,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        is_admin=bool(row.is_admin),
        oauth_id=row.oauth_id or "",
        should_change_password=bool(row.should_change_password),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
