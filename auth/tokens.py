"""
auth/tokens.py -- Credential codec: JWT pairs, password hashing, session cookies.

Security design decisions:
  JWT: python-jose with HS256. Every login or refresh mints an access/refresh
       pair. Both carry sub (user id), type, iat, exp and a random jti.
       Access tokens are signed with SECRET_KEY and refresh tokens with
       REFRESH_SECRET_KEY, so one class can never be replayed as the other.
       The type claim is checked as well.

       Expiry is checked here rather than inside jose so callers can pass an
       explicit `now`. A token is valid up to and including its exp second.

       Verification raises InvalidCredential or ExpiredCredential. Callers at
       the boundary collapse both into Unauthenticated -- clients never learn
       which one it was.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  SECRET_KEY / REFRESH_SECRET_KEY: sourced from core.config.get_settings().

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import ExpiredCredential, InvalidCredential
from auth.models import TokenPair
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("pandamarket.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_COOKIE_NAME = "access_token"
REFRESH_COOKIE_NAME = "refresh_token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are silently truncated by bcrypt. The API
    layer caps password length well below that.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


# Timing equalization dummy hash [C1].
_DUMMY_HASH: str = hash_password("pandamarket_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(user_id: int, token_type: str, issued_at: datetime, expires_at: datetime, key: str) -> str:
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": issued_at,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, key, algorithm=_ALGORITHM)


def mint_token_pair(user_id: int, now: datetime | None = None) -> TokenPair:
    """Mint a fresh access/refresh pair for user_id.

    Pure apart from the random jti: nothing is persisted here. The caller
    records the refresh token in the TokenStore.

    Args:
        user_id: Subject identifier (users.id).
        now:     Issue time. Defaults to the current UTC time. Sub-second
                 precision is dropped because JWT timestamps are whole seconds.
    """
    issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    access_expires = issued_at + timedelta(seconds=_settings.access_token_expire_seconds)
    refresh_expires = issued_at + timedelta(seconds=_settings.refresh_token_expire_seconds)
    return TokenPair(
        access_token=_encode(user_id, "access", issued_at, access_expires, _settings.secret_key),
        refresh_token=_encode(user_id, "refresh", issued_at, refresh_expires, _settings.refresh_secret_key),
        access_expires_at=access_expires,
        refresh_expires_at=refresh_expires,
    )


def _verify(token: str, token_type: str, key: str, now: datetime | None) -> int:
    try:
        payload = jwt.decode(token, key, algorithms=[_ALGORITHM], options={"verify_exp": False})
    except JWTError as exc:
        logger.debug("%s token rejected by jose: %s", token_type, exc)
        raise InvalidCredential(f"{token_type} token failed verification") from exc

    if payload.get("type") != token_type:
        raise InvalidCredential(f"not a {token_type} token")
    sub = payload.get("sub")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not sub.isdigit() or not isinstance(exp, int):
        raise InvalidCredential(f"{token_type} token is missing required claims")

    # Full precision: a token is expired at any instant after its exp second.
    if (now or datetime.now(timezone.utc)).timestamp() > exp:
        raise ExpiredCredential(f"{token_type} token expired")
    return int(sub)


def verify_access_token(token: str, now: datetime | None = None) -> int:
    """Verify an access token and return its subject id.

    Raises InvalidCredential or ExpiredCredential. Stateless: no store lookup.
    """
    return _verify(token, "access", _settings.secret_key, now)


def verify_refresh_token(token: str, now: datetime | None = None) -> int:
    """Verify a refresh token's signature and expiry and return its subject id.

    This is only half of refresh-token validity -- the TokenStore must still
    hold a record for the value. SessionManager.refresh() checks both.
    """
    return _verify(token, "refresh", _settings.refresh_secret_key, now)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(response, pair: TokenPair) -> None:
    """Write the token pair as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    The refresh cookie is path-scoped to the auth router.
    """
    response.set_cookie(
        ACCESS_COOKIE_NAME,
        value=pair.access_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.access_token_expire_seconds,
    )
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        value=pair.refresh_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.refresh_token_expire_seconds,
        path=_settings.refresh_cookie_path,
    )


def clear_session_cookies(response) -> None:
    """Expire both session cookies. Paths must match the ones used when setting."""
    response.delete_cookie(
        ACCESS_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        path=_settings.refresh_cookie_path,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )
