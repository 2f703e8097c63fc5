"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for UserPortal happen here (the serverless
caller has its own settings class in serverless/config.py). No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode (DEBUG=true) fills in missing secrets with random
      values and warns; production mode refuses to start without them.

Security notes:
  [M6] SECRET_KEY and SERVERLESS_SECRET_KEY shorter than 32 chars are
       rejected. JWT signing and the service HMAC both rely on key entropy.

  [M7] In production mode a missing SECRET_KEY, SERVERLESS_SECRET_KEY or
       BACKEND_URL is a hard startup failure. Signatures can never verify
       without them, so the process must not come up half-configured.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
accounts/, or serverless/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("userportal.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'userportal.db'}"
_DEV_BACKEND_URL = "http://localhost:8000"


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
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Service-to-service signatures
    # ------------------------------------------------------------------

    serverless_secret_key: str = ""
    # Public base URL of this backend. Both sides sign it as the HMAC context.
    backend_url: str = ""
    signature_max_skew_seconds: int = 300
    signature_header: str = "serverlessSignature"
    # When true the request path is appended to the context, so a signature
    # minted for /api/v1/users cannot be replayed against another endpoint.
    signature_bind_path: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret and backend-location policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate missing keys and fall back to a
            localhost BACKEND_URL, each with a warning.

        Production mode: refuse to start if any of them is missing.
        """
        if not self.secret_key:
            self.secret_key = self._dev_default("SECRET_KEY", secrets.token_hex(32))
        if not self.serverless_secret_key:
            self.serverless_secret_key = self._dev_default("SERVERLESS_SECRET_KEY", secrets.token_hex(32))
        if not self.backend_url:
            self.backend_url = self._dev_default("BACKEND_URL", _DEV_BACKEND_URL)
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if len(self.serverless_secret_key) < 32:
            raise ValueError("SERVERLESS_SECRET_KEY must be at least 32 characters.")
        if self.signature_max_skew_seconds <= 0:
            raise ValueError("SIGNATURE_MAX_SKEW_SECONDS must be positive.")
        self.backend_url = self.backend_url.rstrip("/")
        return self

    def _dev_default(self, name: str, value: str) -> str:
        if not self.debug:
            raise ValueError(
                f"{name} is required in production mode. "
                f"Set {name} in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        logger.warning("WARNING: %s is not set; using a development default.", name)
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
