"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for DocDesk happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning, production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. Session JWTs are
       signed with it -- a short key weakens every token the service issues.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

  [K1] PREVIOUS_SECRET_KEYS lists retired signing keys that are still accepted
       for verification during a rotation grace period. New tokens are always
       signed with SECRET_KEY.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("docdesk.config")


def _split_csv(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.

    List-valued fields (ADMIN_ALLOW_LIST, PREVIOUS_SECRET_KEYS) are read as
    comma-separated strings.
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
    app_name: str = "DocDesk"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    previous_secret_keys: Annotated[list[str], NoDecode] = []  # [K1]
    database_url: str = ""  # empty = bundled SQLite file next to auth/store.py

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # Seven days.
    token_expire_seconds: int = 7 * 24 * 3600

    # Identities permitted to hold the admin role, independent of any claim
    # in a signed token. Normalized to lowercase by the validator below.
    admin_allow_list: Annotated[list[str], NoDecode] = []

    # ------------------------------------------------------------------
    # One-time passwords
    # ------------------------------------------------------------------

    otp_ttl_seconds: int = 10 * 60
    otp_max_attempts: int = 5
    otp_resend_cooldown_seconds: int = 30
    # Must outlive the OTP -- the user still has a form to fill in.
    verify_token_ttl_seconds: int = 15 * 60

    # ------------------------------------------------------------------
    # Mail delivery (Mailjet HTTPS API)
    # ------------------------------------------------------------------

    mailjet_api_key_public: str = ""
    mailjet_api_key_private: str = ""
    sender_email: str = ""
    sender_name: str = "DocDesk"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("admin_allow_list", mode="before")
    @classmethod
    def parse_allow_list(cls, value) -> list[str]:
        return [item.lower() for item in _split_csv(value)]

    @field_validator("previous_secret_keys", mode="before")
    @classmethod
    def parse_previous_keys(cls, value) -> list[str]:
        return _split_csv(value)

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.otp_max_attempts < 1:
            raise ValueError("OTP_MAX_ATTEMPTS must be at least 1.")
        if self.verify_token_ttl_seconds <= self.otp_ttl_seconds:
            logger.warning("VERIFY_TOKEN_TTL_SECONDS should be longer than OTP_TTL_SECONDS.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
