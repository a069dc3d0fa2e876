"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for MemberAuth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, smtp_host -> SMTP_HOST).

  @model_validator(mode="after"): dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one. Production
      also refuses to start without SMTP_HOST.

Security notes:
  SECRET_KEY signs the session cookie and the email verification links.
  Keys shorter than 32 chars are rejected outright.

  The KDF fields (kdf_iterations, kdf_key_length, kdf_digest) are part of the
  stored-hash format. Changing any of them invalidates every stored password.
  The defaults reproduce hashes written by the legacy membership site.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, notify/, or blobs/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("memberauth.config")


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///memberauth.db"

    # ------------------------------------------------------------------
    # HTTP / session
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_max_age: int = 14 * 24 * 3600
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    public_base_url: str = "http://localhost:8000"
    organization_name: str = "Membership Society"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    signin_rate_limit: str = "10/minute"
    recovery_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    kdf_iterations: int = 1250
    kdf_key_length: int = 64
    kdf_digest: str = "sha512"
    salt_bytes: int = 2048
    # secrets.token_urlsafe(12) -> 16 chars, 96 bits of entropy
    temp_password_bytes: int = 12

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    admin_role_name: str = "Admin"
    default_roles: list[str] = ["Admin", "Member"]

    # ------------------------------------------------------------------
    # Outbound mail (empty smtp_host = log recipient and subject; DEBUG only)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout: float = 10.0
    mail_from: str = "noreply@localhost"
    mail_from_name: str = "Membership Society"

    # ------------------------------------------------------------------
    # Document storage
    # ------------------------------------------------------------------

    blob_root: str = "uploads"
    max_document_bytes: int = 10 * 1024 * 1024
    blob_base_url: str = "http://localhost:8000/uploads"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and verification links will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. "
                    "Sessions and verification links will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_mail_transport(self) -> "Settings":
        """Production mode requires SMTP_HOST.

        Dev mode (DEBUG=true) without SMTP_HOST uses the logging sink, which
        records recipient and subject only and accepts every message.
        """
        if not self.debug and not self.smtp_host:
            raise ValueError(
                "SMTP_HOST is required in production mode. "
                "Set SMTP_HOST in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
