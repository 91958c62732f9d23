"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and TokenStore are the repositories; _row_to_user is the mapper.
Route, gate and session code never touches SQL directly.

TokenStore holds the set of currently valid refresh tokens. A refresh token
whose row is missing is dead even if its signature still verifies. All
mutations are single transactions:
  put()    -- one INSERT (PRIMARY KEY on the token value rejects duplicates)
  rotate() -- DELETE old + INSERT new in one transaction (engine.begin())
  delete() -- one DELETE, idempotent

rotate() is what makes refresh tokens single-use. The DELETE takes the write
lock (SQLite) or the row lock (PostgreSQL) before anything else happens, so
when two requests rotate the same value concurrently the second DELETE sees
zero rows and the rotation reports False. If the INSERT fails, the context
manager rolls the DELETE back and the old token stays valid.

Security:
  All queries use bound parameters. No f-strings in SQL.

Both stores are created explicitly by the application lifespan and closed on
shutdown -- there is no module-level client.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import TokenConflict
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
    Column("email", String(255), nullable=False, unique=True),
    Column("nickname", String(100), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("image", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token", String(512), primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32)),  # ISO 8601; NULL = never purged
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str, timeout: float | None) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # Busy timeout: a writer waits this long for the lock before failing.
        connect_args["timeout"] = timeout if timeout is not None else get_settings().db_timeout_seconds
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# User repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="a@x.com", nickname="A", hashed_password=hash_password("p1")))
        user = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None, timeout: float | None = None) -> None:
        self.engine: Engine = _make_engine(db_url or get_settings().database_url, timeout)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers should treat IntegrityError as "a concurrent request already
        registered this email".
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    nickname=user.nickname,
                    hashed_password=user.hashed_password,
                    image=user.image,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored hash. Returns False if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(hashed_password=hashed_password, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Refresh-token repository
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository of live refresh tokens, keyed by token value.

    Usage:
        tokens = TokenStore()
        tokens.put(pair.refresh_token, user_id, pair.refresh_expires_at)
        tokens.rotate(old, new.refresh_token, user_id, new.refresh_expires_at)
        tokens.delete(token)
        tokens.close()
    """

    def __init__(self, db_url: str | None = None, timeout: float | None = None) -> None:
        self.engine: Engine = _make_engine(db_url or get_settings().database_url, timeout)

    def put(self, token: str, user_id: int, expires_at: datetime | None = None) -> None:
        """Record a newly issued refresh token.

        Raises TokenConflict if the value is already recorded.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(_token_insert(token, user_id, expires_at))
        except IntegrityError as exc:
            raise TokenConflict("refresh token already recorded") from exc

    def get(self, token: str) -> int | None:
        """Return the owning user id, or None if the token is not recorded."""
        with self.engine.connect() as conn:
            return conn.execute(
                select(_refresh_tokens.c.user_id).where(_refresh_tokens.c.token == token)
            ).scalar_one_or_none()

    def rotate(self, old_token: str, new_token: str, user_id: int, expires_at: datetime | None = None) -> bool:
        """Atomically replace old_token with new_token for user_id.

        Returns False, changing nothing, if old_token is not recorded for
        user_id (already rotated, logged out, or never issued). Returns True
        once the delete and insert have committed together.

        Raises TokenConflict if new_token is already recorded; the delete is
        rolled back in that case.
        """
        try:
            with self.engine.begin() as conn:
                deleted = conn.execute(
                    _refresh_tokens.delete().where(
                        (_refresh_tokens.c.token == old_token) & (_refresh_tokens.c.user_id == user_id)
                    )
                )
                if deleted.rowcount != 1:
                    return False
                conn.execute(_token_insert(new_token, user_id, expires_at))
        except IntegrityError as exc:
            raise TokenConflict("rotated refresh token already recorded") from exc
        return True

    def delete(self, token: str) -> bool:
        """Remove a token. Idempotent: returns False if it was not recorded."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
        return result.rowcount > 0

    def count_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete tokens whose expires_at has passed. Returns number of rows removed.

        Expired tokens already fail signature-time verification; this only
        keeps the table from growing without bound.
        """
        cutoff = _iso(now or datetime.now(timezone.utc))
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    _refresh_tokens.c.expires_at.is_not(None) & (_refresh_tokens.c.expires_at < cutoff)
                )
            )
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


def _token_insert(token: str, user_id: int, expires_at: datetime | None):
    return _refresh_tokens.insert().values(
        token=token,
        user_id=user_id,
        created_at=_now_iso(),
        expires_at=_iso(expires_at),
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        nickname=row.nickname,
        hashed_password=row.hashed_password,
        image=row.image,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
