"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionAuth happen here. No module should
call os.getenv() or os.environ.get() directly. The API layer calls
get_settings() once at startup and hands the Settings instance to the
session registry, auth service, and policies through their constructors.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET). Type coercion happens once here,
      not per call at the point of use.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Used for the DEBUG-conditional SESSION_SECRET rule and the
      TTL sanity checks.

Security notes:
  [M6] SESSION_SECRET shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SESSION_SECRET
       is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, users/, or cache/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionauth.config")

_DATA_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    session_secret: str = ""
    base_url: str = "http://localhost:3000"
    client_url: str = "http://localhost:5173"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = f"sqlite:///{_DATA_DIR / 'sessionauth_users.db'}"
    # sqlite:///path selects the SQLite cache, redis://... selects Redis.
    cache_url: str = f"sqlite:///{_DATA_DIR / 'sessionauth_cache.db'}"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_expiry: int = 3600
    refresh_expiry: int = 86400
    # A verified token this close to its exp claim gets rotated.
    refresh_threshold: int = 300
    max_active_sessions: int = 2
    bcrypt_rounds: int = 10
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # API key (separate key-based guard on /users routes)
    # ------------------------------------------------------------------

    api_key: str = ""

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    github_oauth_client_id: str = ""
    github_oauth_client_secret: str = ""
    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_session_secret(self) -> "Settings":
        """Enforce SESSION_SECRET policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart.

        Production mode: refuse to start if SESSION_SECRET is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.session_secret:
            if self.debug:
                self.session_secret = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SESSION_SECRET. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SESSION_SECRET is required in production mode. "
                    "Set SESSION_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.session_secret) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_expiry(self) -> "Settings":
        """Reject TTLs that would produce tokens which are already expired."""
        if self.session_expiry <= 0 or self.refresh_expiry <= 0:
            raise ValueError("SESSION_EXPIRY and REFRESH_EXPIRY must be positive (seconds).")
        if self.max_active_sessions < 1:
            raise ValueError("MAX_ACTIVE_SESSIONS must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or build Settings(...) directly
    and pass it to the component under test.
    """
    return Settings()
