"""
auth/session.py -- Session service: login, refresh, logout, current user.

The one place the token lifecycle is orchestrated. Route handlers and the
auth guard call into this; nothing else touches the stores for auth flows.

Flow summary:
  login(email, password)
      validate -> user by email -> active? -> bcrypt -> access token
      + new refresh token record. Unknown email, inactive account and wrong
      password all raise the same InvalidCredentials, and all three pay one
      bcrypt verification (dummy hash when there is no usable account).
  refresh(token)
      validate -> record -> not expired -> owner by id -> active? -> new
      access token from the freshly read user. The refresh token itself is
      reused, not rotated.
  logout(token)
      validate -> delete (idempotent).
  current_user(claims)
      owner by subject id (never by email, which is mutable) -> active?

The service keeps no state of its own; it is safe to share one instance
across concurrent requests.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from auth.errors import InactiveUser, InvalidCredentials, InvalidToken, UserNotFound, ValidationError
from auth.models import AccessClaims, PublicUser
from auth.passwords import MAX_PASSWORD_LENGTH, PasswordHasher
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import AccessTokenCodec

logger = logging.getLogger("sessiongate.session")

# One "@", no whitespace, a dot in the domain part.
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    expires_in: int
    user: PublicUser


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    expires_in: int
    user: PublicUser


def _require_text(value: object, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.")
    return value


def normalize_email(email: object) -> str:
    """Strip and shape-check an email address. Raises ValidationError."""
    email = _require_text(email, "email").strip()
    if not _EMAIL_RE.match(email):
        raise ValidationError("email must be a valid email address.")
    return email


def check_password(password: object) -> str:
    """Return the password if it is a non-blank string within MAX_PASSWORD_LENGTH."""
    password = _require_text(password, "password")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_LENGTH} characters.")
    return password


class SessionService:
    """Orchestrates the session-token lifecycle.

    Usage:
        service = SessionService(users, refresh_tokens, codec, hasher)
        result = service.login("a@x.com", "secret1")
        service.refresh(result.refresh_token)
        service.logout(result.refresh_token)
    """

    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        codec: AccessTokenCodec,
        hasher: PasswordHasher,
    ) -> None:
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.codec = codec
        self.hasher = hasher

    def login(self, email: object, password: object) -> LoginResult:
        email = normalize_email(email)
        password = check_password(password)

        user = self.users.get_by_email(email)
        if user is None or not user.is_active:
            # Same bcrypt cost as a real check, same error as a wrong password.
            self.hasher.verify(password, self.hasher.dummy_hash)
            logger.info("Login rejected: no active account")
            raise InvalidCredentials()
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login rejected: bad password for user %s", user.id)
            raise InvalidCredentials()

        access_token = self.codec.issue(user.id, user.email, user.profile)
        refresh_token = self.refresh_tokens.create(user.id)
        logger.info("Login: user %s", user.id)
        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.codec.expire_seconds,
            user=PublicUser.from_user(user),
        )

    def refresh(self, refresh_token: object) -> RefreshResult:
        refresh_token = _require_text(refresh_token, "refresh_token")

        record = self.refresh_tokens.find(refresh_token)
        if record is None:
            logger.debug("Refresh rejected: unknown token")
            raise InvalidToken()
        if not self.refresh_tokens.is_valid(record):
            logger.debug("Refresh rejected: token expired for user %s", record.user_id)
            raise InvalidToken()

        user = self.users.get_by_id(record.user_id)
        if user is None:
            logger.info("Refresh rejected: owner %s no longer exists", record.user_id)
            raise InvalidToken()
        if not user.is_active:
            logger.info("Refresh rejected: user %s inactive", user.id)
            raise InactiveUser()

        return RefreshResult(
            access_token=self.codec.issue(user.id, user.email, user.profile),
            expires_in=self.codec.expire_seconds,
            user=PublicUser.from_user(user),
        )

    def logout(self, refresh_token: object) -> bool:
        """Delete the refresh token. Returns whether a record was removed.

        Callers report success either way; the return value is for logging.
        """
        refresh_token = _require_text(refresh_token, "refresh_token")
        deleted = self.refresh_tokens.delete(refresh_token)
        logger.info("Logout (token %s)", "deleted" if deleted else "already gone")
        return deleted

    def current_user(self, claims: AccessClaims) -> PublicUser:
        user = self.users.get_by_id(claims.subject_id)
        if user is None:
            raise UserNotFound()
        if not user.is_active:
            raise InactiveUser()
        return PublicUser.from_user(user)

    def current_user_from_token(self, access_token: object) -> PublicUser:
        """Self-contained variant for callers not behind the auth guard."""
        access_token = _require_text(access_token, "access_token")
        return self.current_user(self.codec.verify(access_token))
