"""
auth/tokens.py -- Access-token codec (signed, short-lived, stateless).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id), email, profile,
       iat and exp. exp is always iat + the configured TTL (default 1 hour).

  Uniform failure: bad signature, malformed structure, expired exp and
       missing claims all raise the same InvalidToken with the same message.
       The reason is logged at DEBUG for operators only, so a caller cannot
       use the response as an oracle.

  No revocation: an access token stays valid until exp. Logout deletes the
       refresh token; access tokens are kept short-lived instead.

  Secret: passed in by the caller (normally Settings.secret_key). An empty
       secret is rejected at construction -- there is no fallback value.

Layer rule: no imports from api/ or core/. Configuration arrives as arguments.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.models import AccessClaims

logger = logging.getLogger("sessiongate.auth")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "email", "profile", "iat", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessTokenCodec:
    """Issue and verify access tokens.

    Usage:
        codec = AccessTokenCodec(settings.secret_key, expire_seconds=3600)
        token = codec.issue(user.id, user.email, user.profile)
        claims = codec.verify(token)   # AccessClaims, or raises InvalidToken

    clock is injectable so tests can mint tokens that are already expired.
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("AccessTokenCodec requires a non-empty secret key.")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._clock = clock

    def issue(self, subject_id: str, email: str, profile: str) -> str:
        """Encode a signed JWT for the given identity snapshot."""
        issued_at = self._clock().replace(microsecond=0)
        payload = {
            "sub": str(subject_id),
            "email": email,
            "profile": profile,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> AccessClaims:
        """Decode and verify a JWT. Raises InvalidToken on any failure."""
        # exp is checked below against self._clock, the same clock issue() uses.
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug("Access token rejected: %s", exc)
            raise InvalidToken() from None

        missing = [c for c in _REQUIRED_CLAIMS if c not in payload]
        if missing:
            logger.debug("Access token rejected: missing claims %s", missing)
            raise InvalidToken()

        try:
            claims = AccessClaims(
                subject_id=str(payload["sub"]),
                email=str(payload["email"]),
                profile=str(payload["profile"]),
                issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (TypeError, ValueError, OverflowError):
            logger.debug("Access token rejected: non-numeric time claims")
            raise InvalidToken() from None

        if self._clock() >= claims.expires_at:
            logger.debug("Access token rejected: expired")
            raise InvalidToken()
        return claims
