"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Stores and the session service do
the work; these only own the shape. PublicUser.from_user is the one factory,
colocated with the projection it builds so the password hash can never leak
through a hand-written mapping somewhere else.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Profile(str, Enum):
    """Role tag carried on every user and copied into access tokens."""

    ADMINISTRATOR = "ADMINISTRATOR"
    PARTNER = "PARTNER"
    INVESTOR = "INVESTOR"


@dataclass
class User:
    """A record in the User Directory.

    email is unique and matched case-sensitively as stored. password_hash is
    a bcrypt string (cost and salt embedded); plaintext never reaches here.
    """

    email: str
    name: str
    password_hash: str
    profile: str = Profile.INVESTOR.value
    id: str | None = None  # UUID string, assigned by UserStore.create_user()
    is_active: bool = True
    created_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """The only user shape allowed to cross the service boundary."""

    id: str
    name: str
    email: str
    profile: str

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(id=user.id or "", name=user.name, email=user.email, profile=user.profile)


@dataclass(frozen=True)
class RefreshToken:
    """A persisted refresh-token record.

    token is the opaque value handed to the client and doubles as the primary
    key. No rotation: the same record is reused for every refresh until it
    expires or is deleted at logout.
    """

    token: str
    user_id: str
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AccessClaims:
    """Verified content of an access token."""

    subject_id: str
    email: str
    profile: str
    issued_at: datetime
    expires_at: datetime
