"""Application configuration settings.

Values are read from environment variables (or a ``.env`` file) with
``pydantic-settings``. ``get_settings`` caches the instance so every part of
the application sees the same configuration.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    app_title: str = Field(default="Room Reservation API", alias="APP_TITLE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    store_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        alias="STORE_TIMEOUT_SECONDS",
        description="How long a request waits for the store before failing.",
    )

    # Caller identity
    identity_mode: Literal["token", "header"] = Field(
        default="token",
        alias="IDENTITY_MODE",
        description=(
            "'token' verifies the bearer token issued by /login. "
            "'header' trusts a client-supplied X-User-Id header."
        ),
    )
    token_secret: str = Field(default="change-me", alias="TOKEN_SECRET")
    token_ttl_seconds: int = Field(default=8 * 60 * 60, gt=0, alias="TOKEN_TTL_SECONDS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
