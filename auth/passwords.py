"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is called directly; there is no passlib layer.

The cost factor is configurable (Settings.bcrypt_rounds, default 10). Hashes
embed their own salt and cost, so changing the setting only affects new
hashes; existing ones keep verifying.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes; longer input is rejected before hashing.
MAX_PASSWORD_LENGTH = 64


class PasswordHasher:
    """Hash and verify passwords with a fixed bcrypt work factor.

    Usage:
        hasher = PasswordHasher(rounds=10)
        stored = hasher.hash("secret1")
        hasher.verify("secret1", stored)   # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        # Verified in place of a real hash when the account is unknown or
        # inactive, so both paths pay one full bcrypt round.
        self.dummy_hash = self.hash("sessiongate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        bcrypt truncates input beyond 72 bytes. The API layer caps password
        length well below that.
        """
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A missing or malformed hash is an ordinary mismatch, never an error.
        """
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False
