"""
API request and response models for PandaMarket REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields that the session manager validates itself (missing/blank
email, password, nickname) are Optional here on purpose: a missing field must
surface as the 400 validation_error from SessionManager, not as a schema
error with a different shape.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Identity

# bcrypt only looks at the first 72 bytes; keep inputs well below that.
_MAX_PASSWORD = 64


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    email: Optional[str] = Field(default=None, max_length=255)
    nickname: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None, max_length=_MAX_PASSWORD)
    image: Optional[str] = Field(default=None, max_length=2048)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No length caps: any wrong credential, however long, must come back as the
    generic 401 bad_credentials rather than a 400.
    """

    email: Optional[str] = None
    password: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    """Request body for PATCH /api/v1/users/me/password."""

    current_password: Optional[str] = Field(default=None, alias="currentPassword", max_length=_MAX_PASSWORD)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=_MAX_PASSWORD)

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    nickname: str
    image: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            nickname=identity.nickname,
            image=identity.image,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class SessionStatusResponse(BaseModel):
    """Response for GET /api/v1/auth/session (optional-auth endpoint)."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user: Optional[IdentityResponse] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
