"""
core/config.py -- sessiongate settings, loaded once from the environment.

Every environment read goes through get_settings(); nothing else in the
project touches os.environ.

Settings is a pydantic-settings model: each field is filled from the
upper-cased env var of the same name (secret_key <- SECRET_KEY) or from a
local .env file, with types coerced and range-checked on load.
get_settings() is lru_cached so the whole process shares one instance.

SECRET_KEY has no default. Startup fails when it is missing, empty, or
shorter than 32 characters.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'sessiongate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Everything except secret_key has a default. The model_validator enforces
    the signing-secret policy at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator
    # below refuses to build a Settings object while it is still "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Token lifetimes
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = Field(default=3600, gt=0)
    refresh_token_expire_days: int = Field(default=7, gt=0)

    # bcrypt cost factor. 4 is the library minimum (tests), 31 the maximum.
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # 0 disables the background reaper; expiry is still enforced at read time.
    refresh_purge_interval_seconds: int = Field(default=0, ge=0)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    refresh_rate_limit: str = "30/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to start without a usable signing secret."""
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def refresh_token_expire_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings; tests that change env vars call get_settings.cache_clear()."""
    return Settings()
