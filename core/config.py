"""
core/config.py -- PropertyDesk settings, read from the environment by pydantic-settings.

Every environment read in the project goes through get_settings(). Field
names map to upper-case variables (token_expire_seconds ->
TOKEN_EXPIRE_SECONDS) and a .env file in the working directory is honoured.

get_settings() is lru_cached, so the first call fixes the configuration for
the life of the process. Tests set their variables before importing api/.

SECRET_KEY signs every bearer token. It is checked once, here:
  - unset with DEBUG=true   -> a random key is generated (tokens die on restart)
  - unset otherwise         -> startup fails
  - shorter than 32 chars   -> startup fails
Rotating it means restarting, which invalidates all outstanding tokens.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("propertydesk.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'propertydesk_auth.db'}"


class Settings(BaseSettings):
    """Every field has a default except the secret, which the validator fills in or rejects."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    secret_key: str = ""  # "" means unset; never survives validation
    database_url: str = _DEFAULT_DB_URL

    # Tokens

    secure_cookies: bool = False
    token_expire_seconds: int = Field(default=7 * 24 * 3600, gt=0)

    # Verification codes

    verification_code_ttl_seconds: int = Field(default=600, gt=0)
    verification_code_length: int = Field(default=6, ge=6, le=12)
    code_purge_interval_seconds: int = Field(default=3600, gt=0)

    # Password hashing

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Dedicated threads for bcrypt so a burst of logins cannot starve the
    # threadpool that serves ordinary requests.
    password_hash_workers: int = Field(default=4, ge=1)

    # HTTP

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # Rate limiting

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    code_rate_limit: str = "5/minute"

    # Bootstrap

    # When set and the whitelist is empty at startup, this email is
    # whitelisted so a fresh install has a way into the back office.
    bootstrap_admin_email: str = ""
    bootstrap_admin_name: str = "Administrator"

    @model_validator(mode="after")
    def check_secret_key(self) -> "Settings":
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_hex(32)
            logger.warning("DEBUG is on and SECRET_KEY is unset: using a throwaway key. Tokens die on restart.")
        elif not self.secret_key:
            raise ValueError("SECRET_KEY is required unless DEBUG=true. Set it in the environment or .env.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call."""
    return Settings()
