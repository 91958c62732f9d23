"""
auth/errors.py -- Failure taxonomy for the session-authentication subsystem.

Two families:

  Component failures -- raised by the codec and the token store, never shown
  to clients directly:
    CredentialError (InvalidCredential, ExpiredCredential) from auth/tokens.py
    TokenConflict from auth/store.py

  Boundary failures (AuthError subclasses) -- raised by SessionManager and the
  identity gate. Each carries the HTTP status and the stable error code that
  api/main.py writes into the error envelope. The message is client-safe.

Layer rule: stdlib only. No imports from api/ or fastapi.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Component failures
# ---------------------------------------------------------------------------


class CredentialError(Exception):
    """A token failed verification."""


class InvalidCredential(CredentialError):
    """Bad signature, malformed structure, or wrong token class."""


class ExpiredCredential(CredentialError):
    """Signature verified but the exp claim has passed."""


class TokenConflict(Exception):
    """A refresh-token value is already recorded in the token store."""


# ---------------------------------------------------------------------------
# Boundary failures
# ---------------------------------------------------------------------------


class AuthError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Missing required fields."


class Conflict(AuthError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class InvalidCredentials(AuthError):
    """Login failure. Same message for unknown email and wrong password."""

    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid email or password."


class Unauthenticated(AuthError):
    """Missing, invalid, expired or already-rotated token."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have access to this resource."


class Internal(AuthError):
    pass
