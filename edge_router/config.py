from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Upstream origins (both must end in "/")
    assets_url: str = Field(alias="ASSETS_URL")
    api_url: str = Field(alias="API_URL")
    stage: str = Field(default="default", alias="STAGE")

    # Cache-Control
    client_cache_seconds: int = Field(default=60, ge=0, alias="CLIENT_CACHE_SECONDS")
    shared_cache_seconds: int = Field(default=300, ge=0, alias="SHARED_CACHE_SECONDS")

    # Upstream fetching
    fetch_attempts: int = Field(default=3, ge=1, alias="FETCH_ATTEMPTS")
    fetch_timeout: float = Field(default=10.0, gt=0, alias="FETCH_TIMEOUT")
    # Linear backoff between attempts, in seconds (0 retries immediately)
    fetch_backoff: float = Field(default=0, ge=0, alias="FETCH_BACKOFF")

    # App ids may contain "-" and "_" unless this is switched off
    allow_extended_app_ids: bool = Field(default=True, alias="ALLOW_EXTENDED_APP_IDS")

    @field_validator("assets_url", "api_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        value = value.strip()
        return value if value.endswith("/") else value + "/"


@lru_cache
def get_settings() -> Settings:
    return Settings()
