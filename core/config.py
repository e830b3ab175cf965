"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TaskGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
and hand the resulting values to the services that need them (the token
issuer receives a TokenConfig built from these settings, never the settings
singleton itself).

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used to implement the DEBUG-conditional
      signing key policy: dev mode falls back to a marked development key with
      a warning, production mode refuses to start with a missing, short,
      placeholder or shared key.

Security notes:
  [K1] Access and refresh credentials are signed with different keys. A leaked
       access key must not allow forging refresh credentials, so identical
       keys are rejected in production.

  [K2] Keys shorter than 32 chars are rejected outright. HMAC-SHA256 signing
       relies on key entropy -- a short key weakens every issued credential.

Layer rule: core/ is the kernel. This module may not import from api/, auth/
or projects/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("taskgate.config")

# Development fallbacks. Deliberately recognizable so the production check
# below can refuse them and so they stand out in any leaked config dump.
DEV_ACCESS_SECRET = "dev-only-access-secret-do-not-use-in-production"
DEV_REFRESH_SECRET = "dev-only-refresh-secret-do-not-use-in-production"

_PLACEHOLDER_SECRETS = frozenset(
    {
        DEV_ACCESS_SECRET,
        DEV_REFRESH_SECRET,
        "changeme",
        "change-me",
        "secret",
        "your-secret-key",
        "your-super-secret-jwt-key-change-this-in-production",
    }
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (DEBUG=true is still required for
    the signing keys to fall back). The model_validator enforces
    production-safety rules at startup.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `access_token_secret` reads from ACCESS_TOKEN_SECRET.
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

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # either substitutes the development key or raises.
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    token_issuer: str = "taskgate"
    token_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    totp_issuer: str = "TaskGate"
    totp_valid_window: int = 2
    # Reject a code whose time step was already consumed by this principal.
    totp_single_use: bool = False

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    auth_db_url: str = "sqlite:///taskgate_auth.db"
    projects_db_url: str = "sqlite:///taskgate_projects.db"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    self_registration_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Enforce the signing key policy [K1] [K2].

        Dev mode (DEBUG=true): a missing key falls back to the matching
            DEV_* constant with a warning. Credentials signed with it are
            only trustworthy on the developer's own machine.

        Production mode: refuse to start if either key is missing, is a known
            placeholder, is shorter than 32 characters, or if both classes
            share one key.
        """
        if not self.access_token_secret or not self.refresh_token_secret:
            if not self.debug:
                raise ValueError(
                    "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET are required in production mode. "
                    "Set them in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            self.access_token_secret = self.access_token_secret or DEV_ACCESS_SECRET
            self.refresh_token_secret = self.refresh_token_secret or DEV_REFRESH_SECRET
            logger.warning("WARNING: Using development signing keys. They are unsuitable for production use.")

        if not self.debug:
            for name in ("access_token_secret", "refresh_token_secret"):
                value = getattr(self, name)
                if value in _PLACEHOLDER_SECRETS:
                    raise ValueError(f"{name.upper()} is a placeholder value; configure a real key.")
                if len(value) < 32:
                    raise ValueError(f"{name.upper()} must be at least 32 characters.")
            if self.access_token_secret == self.refresh_token_secret:
                raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")

        if self.access_token_ttl_seconds <= 0 or self.refresh_token_ttl_seconds <= 0:
            raise ValueError("Token TTLs must be positive.")
        if self.totp_valid_window < 0:
            raise ValueError("TOTP_VALID_WINDOW must not be negative.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
