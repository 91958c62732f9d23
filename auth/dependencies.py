"""
auth/dependencies.py -- FastAPI Depends() helpers: the identity gate.

Token sources are checked in priority order:
  1. "access_token" cookie -- set by POST /auth/login and /auth/refresh.
  2. Authorization: Bearer <token> header -- API clients.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises Unauthenticated (HTTP 401).

Both store the outcome on request.state.identity for the rest of the request.
Nothing is cached across requests.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import CredentialError, Unauthenticated
from auth.models import Identity, to_identity
from auth.store import UserStore
from auth.tokens import ACCESS_COOKIE_NAME, verify_access_token

logger = logging.getLogger("pandamarket.auth.gate")


def _extract_access_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(ACCESS_COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def _resolve(request: Request) -> Identity | None:
    token = _extract_access_token(request)
    if token is None:
        return None
    try:
        user_id = verify_access_token(token)
    except CredentialError as exc:
        logger.debug("Access token rejected: %s", exc)
        return None

    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        return None
    return to_identity(user)


def try_get_current_user(request: Request) -> Identity | None:
    """Attempt to authenticate the request. Returns None on any failure.

    Use on read endpoints that work anonymously but change their output when
    the caller is known:
        @router.get("/items")
        def route(viewer: Identity | None = Depends(try_get_current_user)): ...
    """
    try:
        identity = _resolve(request)
    except Exception:
        # The soft gate degrades to anonymous; the cause is still logged.
        logger.exception("Optional identity resolution failed")
        identity = None
    request.state.identity = identity
    return identity


def get_current_user(request: Request) -> Identity:
    """Require authentication. Raises Unauthenticated (401) if not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: Identity = Depends(get_current_user)): ...
    """
    identity = _resolve(request)
    request.state.identity = identity
    if identity is None:
        raise Unauthenticated()
    return identity
