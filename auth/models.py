"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Stores and the session manager do
the work; these only own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account as stored in the user repository.

    email is the identity handle used at login and is unique.
    hashed_password is the bcrypt hash -- never serialized to clients.
    id is None before the record is written to the database.
    """

    email: str
    nickname: str
    hashed_password: str
    image: str | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The resolved identity attached to a request. Carries no secret fields."""

    id: int
    email: str
    nickname: str
    image: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


def to_identity(user: User) -> Identity:
    """Strip secret fields from a stored user."""
    return Identity(
        id=user.id,
        email=user.email,
        nickname=user.nickname,
        image=user.image,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )
