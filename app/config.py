"""Application configuration models."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CACHE_VERSION = "1"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="MAL Widget", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    cache_namespace: str = Field(
        default="https://mal-widget.internal", alias="CACHE_NAMESPACE"
    )
    cache_version: str | None = Field(default=None, alias="CACHE_VERSION")
    cache_ttl_seconds: int = Field(default=3_600, alias="CACHE_TTL", ge=1)
    fetch_timeout_seconds: float = Field(
        default=8.0, alias="FETCH_TIMEOUT", gt=0, le=60
    )

    mal_base_url: HttpUrl = Field(
        default="https://myanimelist.net", alias="MAL_BASE_URL"
    )
    jikan_api_url: HttpUrl = Field(
        default="https://api.jikan.moe/v4", alias="JIKAN_API_URL"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./malwidget.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("cache_namespace", mode="after")
    @classmethod
    def _strip_namespace(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned:
            raise ValueError("CACHE_NAMESPACE may not be empty")
        return cleaned

    @field_validator("cache_version", mode="before")
    @classmethod
    def _coerce_cache_version(cls, value: object) -> str | None:
        """Accept numeric versions from .env files and drop blank values."""

        if value is None:
            return None
        text = str(value).strip()
        return text or None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


def current_cache_version(settings: Settings) -> str | None:
    """Return the configured cache version, preferring the live environment.

    The environment is consulted on every call so an operator can bump
    ``CACHE_VERSION`` without restarting the process.
    """

    live = os.environ.get("CACHE_VERSION")
    if live is not None:
        return live
    return settings.cache_version


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
