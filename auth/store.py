"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and RefreshTokenStore are the repositories; _row_to_user and
_row_to_refresh_token are the mappers. Session and route code never touches
SQL directly.

Connection lifecycle:
  build_engine() is called once at startup and the resulting Engine (a
  connection pool) is handed to both repositories. Nothing here opens or
  disposes an engine per call. Shutdown calls engine.dispose().

Error policy:
  Every public repository method runs under _wrap_db_errors. A SQLAlchemy
  failure is logged with full traceback and re-raised as StorageError, whose
  message is generic. Driver text never reaches a response body.
  IntegrityError is the exception: it passes through so create_user()
  callers can report a duplicate email.

Refresh tokens:
  secrets.token_hex(32) -- 256 bits of entropy, stored as the primary key.
  Expiry is checked lazily (is_valid) when a token is read; purge_expired()
  exists for the optional background reaper and is not required for
  correctness. There is no rotate/update operation: the session service only
  goes through create/find/delete, so a rotation policy can be added here
  later without changing its callers.

Timestamps:
  Stored as UTC ISO-8601 strings with fixed microsecond precision, so string
  comparison in SQL (purge_expired) matches chronological order.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import functools
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import StorageError
from auth.models import RefreshToken, User

logger = logging.getLogger("sessiongate.store")

# Regeneration attempts on a refresh-token primary-key collision.
_MAX_TOKEN_ATTEMPTS = 3

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("profile", String(30), nullable=False, server_default="INVESTOR"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", String(36), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Index("ix_refresh_tokens_user_id", "user_id"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def build_engine(db_url: str) -> Engine:
    """Create the process-wide Engine and make sure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _wrap_db_errors(method):
    """Translate SQLAlchemy failures into StorageError after logging them."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (StorageError, IntegrityError):
            raise
        except SQLAlchemyError as exc:
            logger.exception("Storage failure in %s.%s", type(self).__name__, method.__name__)
            raise StorageError() from exc

    return wrapper


# ---------------------------------------------------------------------------
# User Directory
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Read-only from the session service's point of view (get_by_email,
    get_by_id). The write methods exist for the operator CLI and tests.

    Usage:
        engine = build_engine(settings.database_url)
        users = UserStore(engine)
        uid = users.create_user(User(email="a@x.com", name="A", password_hash=h))
        users.get_by_id(uid)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @_wrap_db_errors
    def create_user(self, user: User) -> str:
        """Insert a new user and return its id (a fresh UUID if user.id is None).

        Raises sqlalchemy.exc.IntegrityError if the email already exists, so
        the CLI can report a duplicate rather than a generic storage failure.
        """
        user_id = user.id or str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    name=user.name,
                    password_hash=user.password_hash,
                    profile=user.profile,
                    is_active=1 if user.is_active else 0,
                    created_at=_to_iso(_utcnow()),
                )
            )
            conn.commit()
        return user_id

    @_wrap_db_errors
    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    @_wrap_db_errors
    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    @_wrap_db_errors
    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, email, profile, is_active, password_hash.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - {"name", "email", "profile", "is_active", "password_hash"}
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for opaque refresh tokens.

    Several tokens per user may coexist (one per device/session); create()
    never touches existing ones.

    Usage:
        tokens = RefreshTokenStore(engine, expire_seconds=7 * 24 * 3600)
        raw = tokens.create(user_id)
        record = tokens.find(raw)
        if record is not None and tokens.is_valid(record): ...
        tokens.delete(raw)
    """

    def __init__(
        self,
        engine: Engine,
        expire_seconds: int = 7 * 24 * 60 * 60,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.engine = engine
        self.expire_seconds = expire_seconds
        self._clock = clock

    @staticmethod
    def generate_token() -> str:
        return secrets.token_hex(32)

    @_wrap_db_errors
    def create(self, user_id: str) -> str:
        """Persist a new token for user_id and return its raw value.

        A primary-key collision regenerates the value. 256 bits of entropy
        makes this unreachable in practice, but the insert is not assumed
        to succeed.
        """
        created_at = self._clock()
        expires_at = created_at + timedelta(seconds=self.expire_seconds)
        for _ in range(_MAX_TOKEN_ATTEMPTS):
            token = self.generate_token()
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        _refresh_tokens.insert().values(
                            token=token,
                            user_id=user_id,
                            created_at=_to_iso(created_at),
                            expires_at=_to_iso(expires_at),
                        )
                    )
                    conn.commit()
            except IntegrityError:
                logger.warning("Refresh token collision for user %s, regenerating", user_id)
                continue
            return token
        logger.error("Could not allocate a unique refresh token after %d attempts", _MAX_TOKEN_ATTEMPTS)
        raise StorageError()

    @_wrap_db_errors
    def find(self, token: str) -> RefreshToken | None:
        """Return the stored record for token, expired or not. None if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def is_valid(self, record: RefreshToken) -> bool:
        """True iff the record has not reached its expiry."""
        return self._clock() < record.expires_at

    @_wrap_db_errors
    def delete(self, token: str) -> bool:
        """Remove a token. Idempotent: returns False if nothing was deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            conn.commit()
        return result.rowcount > 0

    @_wrap_db_errors
    def count_for_user(self, user_id: str) -> int:
        """Number of stored (not necessarily valid) tokens for a user."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0

    @_wrap_db_errors
    def purge_expired(self) -> int:
        """Delete every token past its expiry. Returns number of rows removed."""
        cutoff = _to_iso(self._clock())
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        profile=row.profile,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        token=row.token,
        user_id=row.user_id,
        created_at=_from_iso(row.created_at),
        expires_at=_from_iso(row.expires_at),
    )
