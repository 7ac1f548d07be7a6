"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for LanguageBot happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET).

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. SESSION_SECRET follows the DEBUG-conditional policy; the
      production flag forces secure cookies.

Security notes:
  SESSION_SECRET shorter than 32 chars is rejected outright. JWT signing
  relies on key entropy -- a short key weakens every session.

  ENCRYPTION_KEY is deliberately NOT validated for presence here. A missing
  key makes the credential cipher fall back to a random per-process key with a
  loud warning (see vault/cipher.py); the server must still start.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
vault/, gateway/, or practice/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("languagebot.config")

GOOGLE_ISSUERS = ["accounts.google.com", "https://accounts.google.com"]
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    app_env: str = "development"  # "development" | "production"
    port: int = 3000
    # SQLite only; create_db_engine rejects other backends.
    database_url: str = "sqlite:///languagebot.db"

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    # Empty string is the "not configured" sentinel for both secrets.
    session_secret: str = ""
    encryption_key: str = ""

    # ------------------------------------------------------------------
    # Identity provider (Google Identity Services)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    identity_issuers: list[str] = GOOGLE_ISSUERS
    identity_jwks_url: str = GOOGLE_JWKS_URL
    identity_timeout: float = 10.0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_expire_seconds: int = 24 * 60 * 60
    secure_cookies: bool = False
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Upstream generative-language service
    # ------------------------------------------------------------------

    upstream_base_url: str = GEMINI_BASE_URL
    upstream_credential_header: str = "x-goog-api-key"
    upstream_timeout: float = 60.0
    # Server-operated fallback used when a user has not stored a key.
    gemini_api_key: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_session_secret(self) -> "Settings":
        """Enforce the SESSION_SECRET policy and production cookie flags.

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SESSION_SECRET is missing.

        Both modes: reject secrets shorter than 32 characters.
        """
        if not self.session_secret:
            if self.debug:
                self.session_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated SESSION_SECRET. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SESSION_SECRET is required unless DEBUG=true. "
                    "Set SESSION_SECRET in your environment or .env file "
                    "(python main.py init-env generates one)."
                )
        if len(self.session_secret) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters.")
        if self.is_production:
            self.secure_cookies = True
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
