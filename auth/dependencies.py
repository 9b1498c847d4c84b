"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method is accepted: an 'Authorization: Bearer <token>' header
carrying an access token. There is no cookie path and no API-key path.

get_current_claims() runs the AuthGuard stored on app.state, attaches the
claims to request.state.claims for downstream code (logging, handlers that
only receive the Request), and returns them. Failures propagate as
MissingCredential / InvalidToken; api/main.py renders them as 401.

get_session_service() hands route handlers the shared SessionService built
in the lifespan.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.guard import AuthGuard
from auth.models import AccessClaims
from auth.session import SessionService


def get_current_claims(request: Request) -> AccessClaims:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: AccessClaims = Depends(get_current_claims)): ...
    """
    guard: AuthGuard = request.app.state.guard
    claims = guard.authenticate(request.headers.get("Authorization"))
    request.state.claims = claims
    return claims


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service
