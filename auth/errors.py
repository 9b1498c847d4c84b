"""
auth/errors.py -- Error taxonomy for the session-token lifecycle.

Each class carries the HTTP status it maps to and a stable machine-readable
code. The API layer renders any AuthError as
    {"error": {"code": <code>, "message": <message>}}
without inspecting the concrete class, so adding a new kind here needs no
change in api/.

Merged kinds (enumeration resistance):
  InvalidCredentials covers unknown email, inactive account at login, and
      wrong password. All three must produce an identical response.
  InvalidToken covers bad signature, malformed token, expired access token,
      unknown refresh token, and expired refresh token.

StorageError wraps every lower-layer failure. Its message is generic;
the original exception is chained (__cause__) and logged by the
store, never rendered.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors surfaced to callers of the auth subsystem."""

    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed caller input. Raised before any storage access."""

    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password."


class InvalidToken(AuthError):
    status_code = 401
    code = "invalid_token"
    default_message = "Invalid or expired token."


class InactiveUser(AuthError):
    """Identity resolved but the account is disabled (refresh / me only)."""

    status_code = 401
    code = "inactive_user"
    default_message = "User account is inactive."


class UserNotFound(AuthError):
    """Token subject no longer resolves to a user."""

    status_code = 401
    code = "user_not_found"
    default_message = "User not found."


class MissingCredential(AuthError):
    status_code = 401
    code = "missing_credential"
    default_message = "Bearer token required."


class StorageError(AuthError):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred."


__all__ = [
    "AuthError",
    "ValidationError",
    "InvalidCredentials",
    "InvalidToken",
    "InactiveUser",
    "UserNotFound",
    "MissingCredential",
    "StorageError",
]
