"""
api/routes/v1/users.py -- Endpoints for the signed-in user's own account.

Routes:
  GET   /api/v1/users/me           -- current identity (requires auth)
  PATCH /api/v1/users/me/password  -- change password (requires auth)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import IdentityResponse, MessageResponse, PasswordChangeRequest
from auth.dependencies import get_current_user
from auth.models import Identity
from auth.session import SessionManager

router = APIRouter()


@router.get("/users/me", response_model=IdentityResponse)
def me(current_user: Identity = Depends(get_current_user)) -> IdentityResponse:
    """Return the account attached to the request by the identity gate."""
    return IdentityResponse.from_identity(current_user)


@router.patch("/users/me/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    current_user: Identity = Depends(get_current_user),
) -> MessageResponse:
    """Change the password after re-checking the current one.

    400 if either field is missing, 401 bad_credentials if the current
    password does not match.
    """
    sessions: SessionManager = request.app.state.sessions
    sessions.change_password(current_user.id, body.current_password, body.new_password)
    return MessageResponse(message="Password updated successfully")
