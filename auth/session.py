"""
auth/session.py -- SessionManager: signup, login, refresh, logout.

Per-session lifecycle from the client's point of view:

  Anonymous --login--> Authenticated(A1, R1) --refresh--> Authenticated(A2, R2)
            --refresh--> ... --logout--> Anonymous

Each operation translates every component failure into exactly one AuthError
kind. Component messages (jose errors, SQL errors) go to the server log only.

The manager holds no mutable state of its own. It is constructed once per
process with explicit store handles and shared across request threads.

Layer rule: no imports from api/ or fastapi.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    Conflict,
    CredentialError,
    Internal,
    InvalidCredentials,
    TokenConflict,
    Unauthenticated,
    ValidationError,
)
from auth.models import Identity, TokenPair, User, to_identity
from auth.store import TokenStore, UserStore
from auth.tokens import (
    authenticate_user,
    hash_password,
    mint_token_pair,
    verify_password,
    verify_refresh_token,
)

logger = logging.getLogger("pandamarket.auth.session")

_REFRESH_FAILED = "Invalid or expired refresh token."


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class SessionManager:
    """Orchestrates the codec and the stores for the auth endpoints."""

    def __init__(self, users: UserStore, tokens: TokenStore) -> None:
        self.users = users
        self.tokens = tokens

    # ------------------------------------------------------------------
    # Signup / login
    # ------------------------------------------------------------------

    def signup(
        self,
        email: str | None,
        password: str | None,
        nickname: str | None,
        image: str | None = None,
    ) -> Identity:
        """Register a new account and return its public identity.

        Raises ValidationError if email, password or nickname is missing or
        blank, Conflict if the email is already registered.
        """
        if _blank(email) or _blank(password) or _blank(nickname):
            raise ValidationError("Missing required fields.")
        email = email.strip()

        if self.users.get_by_email(email) is not None:
            raise Conflict("Email already registered.")

        user = User(
            email=email,
            nickname=nickname.strip(),
            hashed_password=hash_password(password),
            image=image,
        )
        try:
            user_id = self.users.create_user(user)
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same email
            raise Conflict("Email already registered.") from exc

        created = self.users.get_by_id(user_id)
        if created is None:
            raise Internal()
        logger.info("User %d registered", user_id)
        return to_identity(created)

    def login(self, email: str | None, password: str | None) -> TokenPair:
        """Check credentials and open a session.

        Unknown email and wrong password both raise the same
        InvalidCredentials, and take the same time (authenticate_user).
        """
        if _blank(email) or password is None:
            raise InvalidCredentials()

        user = authenticate_user(self.users, email.strip(), password)
        if user is None:
            logger.info("Failed login attempt")
            raise InvalidCredentials()

        pair = mint_token_pair(user.id)
        try:
            self.tokens.put(pair.refresh_token, user.id, pair.refresh_expires_at)
        except TokenConflict as exc:
            logger.error("Freshly minted refresh token collided for user %d", user.id)
            raise Internal() from exc

        logger.info("User %d logged in", user.id)
        return pair

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str | None) -> TokenPair:
        """Exchange a live refresh token for a new pair (rotation).

        The old value is consumed: a second refresh with it, concurrent or
        later, raises Unauthenticated. Any rotation failure also raises
        Unauthenticated and the client must log in again; no partial
        session is handed out.
        """
        if not refresh_token:
            raise Unauthenticated(_REFRESH_FAILED)

        try:
            user_id = verify_refresh_token(refresh_token)
        except CredentialError as exc:
            logger.info("Refresh rejected: %s", exc)
            raise Unauthenticated(_REFRESH_FAILED) from exc

        pair = mint_token_pair(user_id)
        try:
            rotated = self.tokens.rotate(refresh_token, pair.refresh_token, user_id, pair.refresh_expires_at)
        except (TokenConflict, SQLAlchemyError) as exc:
            logger.exception("Refresh token rotation failed for user %d", user_id)
            raise Unauthenticated(_REFRESH_FAILED) from exc

        if not rotated:
            # Signature was fine but the store no longer holds it: already
            # rotated, logged out, or replayed.
            logger.warning("Refresh with unrecorded token for user %d", user_id)
            raise Unauthenticated(_REFRESH_FAILED)

        return pair

    def logout(self, refresh_token: str | None) -> None:
        """Revoke the refresh token if one was presented. Never raises."""
        if not refresh_token:
            return
        try:
            self.tokens.delete(refresh_token)
        except SQLAlchemyError:
            logger.exception("Could not delete refresh token during logout")

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, user_id: int, current_password: str | None, new_password: str | None) -> None:
        """Replace the password after re-checking the current one.

        Existing sessions stay valid until their tokens expire or log out.
        """
        if _blank(current_password) or _blank(new_password):
            raise ValidationError("Missing required fields.")

        user = self.users.get_by_id(user_id)
        if user is None:
            raise Unauthenticated()
        if not verify_password(current_password, user.hashed_password):
            raise InvalidCredentials("Invalid current password.")

        self.users.update_password(user_id, hash_password(new_password))
        logger.info("User %d changed password", user_id)
