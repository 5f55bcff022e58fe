"""
core/config.py -- authcore settings, read once from the environment / .env.

Only the composition roots (api/main.py and the CLI in main.py) call
get_settings(). Everything underneath gets plain values through constructors,
so usecases and stores can be built in tests without touching os.environ.

Field names map one-to-one onto environment variables (secret_key reads
SECRET_KEY, access_token_duration_ms reads ACCESS_TOKEN_DURATION_MS, ...).
List fields such as CORS_ORIGINS take a JSON array.

SECRET_KEY policy (enforced by check_secret_key):
  DEBUG=true   missing key -> random per-process key plus a warning
  DEBUG=false  missing key -> startup fails
  any mode     key shorter than 32 chars -> startup fails (TokenMaker has the
               same floor, this just fails earlier)

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or identity/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authcore.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'authcore.db'}"

MIN_SECRET_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Every field has a default; Settings(**overrides) works with no .env present."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    # "" means unset; check_secret_key replaces or rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    )

    # ------------------------------------------------------------------
    # Tokens (milliseconds, same unit TokenMaker takes)
    # ------------------------------------------------------------------

    access_token_duration_ms: int = Field(default=15 * 60 * 1000, gt=0)
    refresh_token_duration_ms: int = Field(default=7 * 24 * 60 * 60 * 1000, gt=0)
    instance_id: str = "default-instance"

    # ------------------------------------------------------------------
    # Auth cookies
    # ------------------------------------------------------------------

    access_token_cookie_key: str = "access_token"
    refresh_token_cookie_key: str = "refresh_token"
    secure_cookies: bool = False

    # slowapi limit string applied to POST /auth/login
    login_rate_limit: str = "10/minute"

    @model_validator(mode="after")
    def check_secret_key(self) -> "Settings":
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file, "
                    "or set DEBUG=true for a throwaway development key."
                )
            self.secret_key = secrets.token_hex(MIN_SECRET_KEY_LENGTH)
            logger.warning("SECRET_KEY not set, using a generated key. Issued tokens die with this process.")
        if len(self.secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters.")
        return self

    @property
    def access_token_max_age(self) -> int:
        """Access cookie max_age in seconds."""
        return self.access_token_duration_ms // 1000

    @property
    def refresh_token_max_age(self) -> int:
        return self.refresh_token_duration_ms // 1000


@lru_cache
def get_settings() -> Settings:
    """Cached Settings(). Tests that change the environment must call get_settings.cache_clear()."""
    return Settings()
