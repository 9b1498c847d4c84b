"""
api/routes/v1/auth.py -- Session-token REST endpoints.

Routes:
  POST /api/v1/auth/login    -- email + password; returns access + refresh token
  POST /api/v1/auth/refresh  -- refresh token -> new access token (token reused)
  POST /api/v1/auth/logout   -- delete refresh token; always 200
  GET  /api/v1/auth/me       -- current user (requires Bearer access token)

Handlers are thin: they unpack the body, call SessionService, and map the
result onto response models. Every failure is an AuthError raised by the
service or the guard; api/main.py renders it. Handlers do not catch.

Security:
  POST /login and POST /refresh are rate-limited per client IP.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, refresh_limit
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshResponse,
    RefreshTokenRequest,
    UserResponse,
)
from auth.dependencies import get_current_claims, get_session_service
from auth.models import AccessClaims
from auth.session import SessionService

# Auth policy:
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - POST /api/v1/auth/logout:   public -- the refresh token is the credential
# - GET  /api/v1/auth/me:       requires Bearer access token (get_current_claims)
router = APIRouter()


def _no_store(payload) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=payload.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# @limiter.limit goes directly under @router so the registered endpoint is the
# rate-limited wrapper. It needs the `request` parameter to key on client IP.
@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_limit)
def login(
    request: Request,
    body: LoginRequest,
    service: SessionService = Depends(get_session_service),
) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email, inactive account and wrong password all return the same
    401 invalid_credentials body.
    """
    result = service.login(body.email, body.password)
    return _no_store(
        LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
            user=UserResponse.from_public(result.user),
        )
    )


@router.post("/auth/refresh", response_model=RefreshResponse)
@limiter.limit(refresh_limit)
def refresh(
    request: Request,
    body: RefreshTokenRequest,
    service: SessionService = Depends(get_session_service),
) -> JSONResponse:
    """Exchange a refresh token for a new access token.

    The refresh token is not rotated; the client keeps using it until it
    expires or is logged out.
    """
    result = service.refresh(body.refresh_token)
    return _no_store(
        RefreshResponse(
            access_token=result.access_token,
            expires_in=result.expires_in,
            user=UserResponse.from_public(result.user),
        )
    )


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    body: RefreshTokenRequest,
    service: SessionService = Depends(get_session_service),
) -> MessageResponse:
    """Delete the refresh token. Unknown or already-deleted tokens still return 200."""
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=MeResponse)
def me(
    claims: AccessClaims = Depends(get_current_claims),
    service: SessionService = Depends(get_session_service),
) -> MeResponse:
    """Return the current user, re-read by the token's subject id."""
    return MeResponse(user=UserResponse.from_public(service.current_user(claims)))
