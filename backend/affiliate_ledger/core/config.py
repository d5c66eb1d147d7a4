# Central place for all configurable settings. We use Pydantic's
# BaseSettings so values can be read from env vars or a .env file.
# Program-level affiliate settings live in the database; the
# AFFILIATE_DEFAULT_* keys only seed that row the first time.

import json
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def safe_json_loads(value):
    try:
        return json.loads(value)
    except Exception:
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_json_loads=safe_json_loads,
    )

    # Core DB connection string, like sqlite:///./ledger.db or Postgres URL.
    DATABASE_URL: str

    # Secret used to sign attribution tokens handed to visitors.
    # Rotating it invalidates every outstanding token.
    SECRET_KEY: str

    # Shared token for admin endpoints (X-Admin-Token header).
    # Left unset, admin endpoints refuse every request.
    ADMIN_API_TOKEN: Optional[str] = None

    # Toggle SQLAlchemy echo logs. Useful for debugging queries locally.
    DB_ECHO: bool = False

    LOG_LEVEL: str = "INFO"

    # Base URL used when building shareable affiliate links.
    APP_BASE_URL: Optional[str] = None

    # Name the checkout collaborator uses when storing the token client-side.
    ATTRIBUTION_COOKIE_NAME: str = "affiliate_ref"

    # Bounded retry for optimistic-lock conflicts on affiliate counters.
    LEDGER_MAX_RETRIES: int = Field(default=5, ge=1, le=10)

    # Seed values for the program settings row.
    AFFILIATE_DEFAULT_ENABLED: bool = False
    AFFILIATE_DEFAULT_MIN_WITHDRAWAL: float = Field(default=100, ge=0)
    AFFILIATE_DEFAULT_COOKIE_DAYS: int = Field(default=30, gt=0)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value


# Instantiate a single settings object for app-wide import.
# Any module can just `from affiliate_ledger.core.config import settings`.
settings = Settings()
