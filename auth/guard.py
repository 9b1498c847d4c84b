"""
auth/guard.py -- Bearer-credential gate for protected operations.

The guard owns exactly one step: turning a raw Authorization header into
verified AccessClaims. It does not look the user up (that is
SessionService.current_user) and it never catches errors raised by the
operation it protects.

Two entry points:
  AuthGuard.authenticate(header) -- for callers that manage their own
      context (the FastAPI dependency in auth/dependencies.py).
  AuthGuard.protect(func) -- decorator for plain callables. The wrapped
      function receives the claims as its first argument:

          @guard.protect
          def handler(claims, payload): ...

          handler("Bearer eyJ...", payload)
"""

from __future__ import annotations

import functools
import inspect

from auth.errors import MissingCredential
from auth.models import AccessClaims
from auth.tokens import AccessTokenCodec

_SCHEME = "bearer"


def extract_bearer(authorization: str | None) -> str:
    """Return the token from an 'Authorization: Bearer <token>' value.

    Raises MissingCredential when the header is absent, uses another scheme,
    or carries an empty token.
    """
    if not authorization:
        raise MissingCredential()
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != _SCHEME or not token:
        raise MissingCredential()
    return token


class AuthGuard:
    def __init__(self, codec: AccessTokenCodec) -> None:
        self.codec = codec

    def authenticate(self, authorization: str | None) -> AccessClaims:
        """Extract and verify the bearer token. Raises MissingCredential or InvalidToken."""
        return self.codec.verify(extract_bearer(authorization))

    def protect(self, func):
        """Wrap func so it runs only with verified claims; see module docstring."""
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(authorization, *args, **kwargs):
                claims = self.authenticate(authorization)
                return await func(claims, *args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(authorization, *args, **kwargs):
            claims = self.authenticate(authorization)
            return func(claims, *args, **kwargs)

        return wrapper
