"""
api/routes/v1/auth.py -- Session authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup    -- create account (alias: /auth/register); 201
  POST /api/v1/auth/login     -- password login; sets access + refresh cookies
  POST /api/v1/auth/refresh   -- rotate the refresh token; sets new cookies
  POST /api/v1/auth/logout    -- revoke refresh token, clear cookies; 200
  GET  /api/v1/auth/session   -- who am I, if anyone (optional auth)

Security:
  [C1] Login goes through SessionManager.login -> authenticate_user(), which
       equalizes timing for unknown emails.
  [M5] Cache-Control: no-store on responses that carry fresh tokens.
  All 401s from refresh share one message: the client never learns whether
  the signature, the expiry, or the store lookup failed.

Store-touching handlers are sync (def) so FastAPI runs them in its thread
pool; bcrypt and database waits never block the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import IdentityResponse, LoginRequest, MessageResponse, SessionStatusResponse, SignupRequest
from auth.dependencies import try_get_current_user
from auth.models import Identity
from auth.session import SessionManager
from auth.tokens import REFRESH_COOKIE_NAME, clear_session_cookies, set_session_cookies

# Auth policy:
# - POST /api/v1/auth/signup:   public
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  refresh cookie required (checked by SessionManager)
# - POST /api/v1/auth/logout:   public -- revoking a session needs no access token
# - GET  /api/v1/auth/session:  optional auth (try_get_current_user)
router = APIRouter()


def _sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def _token_response(message: str) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=MessageResponse(message=message).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/signup", response_model=IdentityResponse, status_code=201)
@router.post("/auth/register", response_model=IdentityResponse, status_code=201, include_in_schema=False)
def signup(request: Request, body: SignupRequest) -> IdentityResponse:
    """Register a new account. Returns the created identity without the password hash."""
    identity = _sessions(request).signup(
        email=body.email,
        password=body.password,
        nickname=body.nickname,
        image=body.image,
    )
    return IdentityResponse.from_identity(identity)


@router.post("/auth/login", response_model=MessageResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set session cookies.

    Unknown email and wrong password return the same 401 bad_credentials.
    """
    pair = _sessions(request).login(body.email, body.password)
    resp = _token_response("Login successful")
    set_session_cookies(resp, pair)
    return resp


@router.post("/auth/refresh", response_model=MessageResponse)
def refresh(request: Request) -> JSONResponse:
    """Exchange the refresh cookie for a new token pair.

    The presented refresh token is consumed. On any failure the response is
    401 and no cookies are written.
    """
    pair = _sessions(request).refresh(request.cookies.get(REFRESH_COOKIE_NAME))
    resp = _token_response("Token refreshed")
    set_session_cookies(resp, pair)
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the refresh token (if any) and clear both cookies. Always 200."""
    _sessions(request).logout(request.cookies.get(REFRESH_COOKIE_NAME))
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_session_cookies(resp)
    return resp


@router.get("/auth/session", response_model=SessionStatusResponse)
def session_status(viewer: Identity | None = Depends(try_get_current_user)) -> SessionStatusResponse:
    """Report whether the caller carries a valid access token. Never 401s."""
    if viewer is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(authenticated=True, user=IdentityResponse.from_identity(viewer))
