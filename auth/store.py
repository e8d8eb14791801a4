"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper.
UserStore is the credential store, SessionStore the refresh-token store;
_row_to_user / _row_to_refresh_token are the mappers. Engine and route code
never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Errors:
  IntegrityError (duplicate email, duplicate token) surfaces as Conflict.
  Any other SQLAlchemyError surfaces as StoreError. "Not found" is a None or
  a zero count, never an exception.

Concurrency:
  SessionStore.delete_by_value() is the single-use gate for refresh tokens.
  It issues one DELETE ... WHERE token = :token and reports the driver's
  rowcount. The database serializes deletes of the same row, so of two racing
  callers exactly one sees 1 and the other sees 0. No extra locking.

Timestamps are stored as fixed-width UTC ISO 8601 strings
(2025-01-01T00:00:00.000000Z) so lexical comparison in SQL matches
chronological order -- purge_expired() relies on this.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import SingletonThreadPool

from auth.errors import Conflict, StoreError
from auth.models import DEFAULT_ROLE, RefreshToken, User
from core.clock import Clock, SystemClock

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # lower-cased
    Column("hashed_password", Text, nullable=False),
    Column("display_name", String(50), nullable=False),
    Column("role", String(30), nullable=False, server_default=DEFAULT_ROLE, index=True),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("version", Integer, nullable=False, server_default="0"),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(512), nullable=False, unique=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("issued_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_sqlite_memory(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and (
        url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"
    )


def _make_engine(db_url: str) -> Engine:
    url = make_url(db_url)
    kwargs: dict = {}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    # An in-memory database (plain or shared-cache URI) lives only while a
    # connection to it is open: keep one per thread for the engine's lifetime.
    if _is_sqlite_memory(url):
        kwargs["poolclass"] = SingletonThreadPool
    engine = create_engine(url, **kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise Conflict(f"{action}: unique constraint violated") from exc
    except SQLAlchemyError as exc:
        raise StoreError(f"{action} failed") from exc


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        raise ValueError("Timestamps must be timezone-aware")
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.create_user(User(email="a@x.com", display_name="Ann", hashed_password=h))
        user = store.get_by_email("A@X.com")
        store.close()
    """

    # Fields update_user() accepts. Validated before any SQL is built.
    _UPDATABLE_FIELDS: frozenset[str] = frozenset({"display_name", "role", "is_active", "hashed_password"})

    def __init__(self, db_url: str, clock: Clock | None = None) -> None:
        self.engine: Engine = _make_engine(db_url)
        self.clock = clock or SystemClock()
        _metadata.create_all(self.engine, tables=[_users])

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises Conflict if the (normalized) email already exists. The engine
        checks first, but two concurrent registrations can both pass that
        check; the UNIQUE constraint is what actually decides.
        """
        now = _to_iso(self.clock.now())
        with _translate_errors("create_user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    display_name=user.display_name,
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    created_at=now,
                    updated_at=now,
                    version=0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        with _translate_errors("get_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with _translate_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with _translate_errors("list_users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_last_login(self, user_id: int, when: datetime) -> bool:
        """Stamp last_login. Returns False if user_id was not found."""
        with _translate_errors("update_last_login"), self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_to_iso(when)))
            conn.commit()
        return result.rowcount > 0

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable profile fields and bump version.

        Accepted fields: display_name, role, is_active, hashed_password.
        Unknown keys raise ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = _to_iso(self.clock.now())
        with _translate_errors("update_user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(version=_users.c.version + 1, **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for outstanding refresh tokens.

    There is deliberately no update method. A refresh token is immutable once
    issued; rotation is delete-old + insert-new.
    """

    def __init__(self, db_url: str, clock: Clock | None = None) -> None:
        self.engine: Engine = _make_engine(db_url)
        self.clock = clock or SystemClock()
        _metadata.create_all(self.engine, tables=[_refresh_tokens])

    def put(self, token: str, user_id: int, expires_at: datetime, issued_at: datetime | None = None) -> None:
        """Insert a new refresh-token record. Raises Conflict if token already exists.

        issued_at defaults to the store clock's now().
        """
        issued = issued_at or self.clock.now()
        with _translate_errors("put"), self.engine.connect() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    token=token,
                    user_id=user_id,
                    issued_at=_to_iso(issued),
                    expires_at=_to_iso(expires_at),
                )
            )
            conn.commit()

    def find_by_value(self, token: str) -> RefreshToken | None:
        with _translate_errors("find_by_value"), self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete_by_value(self, token: str) -> int:
        """Delete one record by token value. Returns rows removed (0 or 1)."""
        with _translate_errors("delete_by_value"), self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            conn.commit()
        return result.rowcount

    def delete_all_by_user(self, user_id: int) -> int:
        """Delete every record owned by user_id. Returns rows removed."""
        with _translate_errors("delete_all_by_user"), self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        with _translate_errors("count_for_user"), self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0

    def purge_expired(self, now: datetime) -> int:
        """Delete all records whose expires_at is at or before now. Returns rows removed.

        Expired records are already rejected at use time; this only trims
        the table.
        """
        with _translate_errors("purge_expired"), self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= _to_iso(now)))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        display_name=row.display_name,
        role=row.role,
        is_active=bool(row.is_active),
        last_login=_from_iso(row.last_login),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
        version=row.version,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        token=row.token,
        user_id=row.user_id,
        issued_at=_from_iso(row.issued_at),
        expires_at=_from_iso(row.expires_at),
    )
