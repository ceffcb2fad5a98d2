"""
Runtime configuration, read from ``MARKETPLACE_*`` environment
variables or a local ``.env`` file.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARKETPLACE_",
        extra="ignore",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    gateway_url: str = Field(
        default="http://localhost:7410",
        min_length=1,
        description="Base URL of the PostgREST-style data gateway.",
    )
    gateway_resource: str = Field(
        default="public_items",
        min_length=1,
        description="Resource (view) holding the catalogue items.",
    )
    http_timeout_seconds: float = Field(default=5.0, gt=0)
    gateway_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries for 5xx, 429 and connection failures.",
    )
    gateway_retry_backoff: float = Field(default=0.25, ge=0)
    user_agent: str = Field(default="marketplace-catalog/1.0", min_length=1)

    cache_ttl_seconds: float = Field(default=30.0, gt=0)
    cache_max_entries: int = Field(default=256, ge=1)

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=200, ge=1)
    featured_limit: int = Field(default=6, ge=1, le=50)

    log_level: str = Field(default="INFO")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
