"""
API request and response models for sessiongate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields are typed loosely (Optional[str]) on purpose: shape checks
(well-formed email, non-empty values) live in SessionService so that every
caller -- HTTP or CLI -- gets the same ValidationError and the same 400.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from auth.models import PublicUser
from auth.passwords import MAX_PASSWORD_LENGTH


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=MAX_PASSWORD_LENGTH)


class RefreshTokenRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and /auth/logout.

    Older clients send the camelCase key; both spellings are accepted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: Optional[str] = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user projection. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    profile: str

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(id=user.id, name=user.name, email=user.email, profile=user.profile)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


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
