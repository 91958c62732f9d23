"""
tests/conftest.py -- Shared test fixtures for PandaMarket auth tests.

This module provides:
  - user_store / token_store / sessions: file-backed SQLite stores in tmp_path
    (real files so concurrent threads get real write locking)
  - api_client: TestClient over the real FastAPI app with a patched lifespan
    wired to isolated named shared-memory stores
  - make_user: factory fixture that creates a user through the store

Named shared-memory SQLite URIs (not plain :memory:) are used for the HTTP
tests because TestClient runs route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG, BCRYPT_ROUNDS and ALLOWED_HOSTS must be set before any auth/core import
so get_settings() picks them up.
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.session import SessionManager
from auth.store import TokenStore, UserStore
from auth.tokens import hash_password

_db_counter = itertools.count()


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def user_store(db_url: str) -> Generator[UserStore, None, None]:
    store = UserStore(db_url)
    yield store
    store.close()


@pytest.fixture
def token_store(db_url: str) -> Generator[TokenStore, None, None]:
    store = TokenStore(db_url)
    yield store
    store.close()


@pytest.fixture
def sessions(user_store: UserStore, token_store: TokenStore) -> SessionManager:
    return SessionManager(user_store, token_store)


@pytest.fixture
def make_user(user_store: UserStore):
    """Return a factory that inserts a user directly through the store and returns its id."""

    def _make(email: str = "a@x.com", password: str = "p1", nickname: str = "A") -> int:
        return user_store.create_user(User(email=email, nickname=nickname, hashed_password=hash_password(password)))

    return _make


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, token_store: TokenStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so routes see isolated
    databases. The purge_task is a long-sleeping coroutine so shutdown can
    cancel a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.token_store = token_store
        app.state.sessions = SessionManager(user_store, token_store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over a fresh in-memory database.

    Function-scoped so every test starts with an empty cookie jar and an
    empty database.
    """
    url = f"sqlite:///file:test_auth_{next(_db_counter)}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(url)
    token_store = TokenStore(url)

    app.router.lifespan_context = _patch_lifespan(user_store, token_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    token_store.close()
    user_store.close()
