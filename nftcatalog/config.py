"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="NFT Catalog", alias="APP_NAME")

    indexer_url: HttpUrl = Field(
        default="https://indexer.chaos.ternoa.com", alias="INDEXER_URL"
    )
    indexer_timeout: float = Field(
        default=20.0, alias="INDEXER_TIMEOUT", gt=0, le=300
    )
    indexer_max_retries: int = Field(
        default=3, alias="INDEXER_MAX_RETRIES", ge=0, le=10
    )
    indexer_page_size: int = Field(
        default=100, alias="INDEXER_PAGE_SIZE", ge=1, le=1_000
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./nftcatalog.db", alias="DATABASE_URL"
    )
    distribution_database_url: str | None = Field(
        default=None, alias="DISTRIBUTION_DATABASE_URL"
    )
    distribution_output_dir: str = Field(default=".", alias="DISTRIBUTION_OUTPUT_DIR")

    population_concurrency: int = Field(
        default=8, alias="POPULATION_CONCURRENCY", ge=1, le=100
    )
    default_page_limit: int = Field(default=10, alias="DEFAULT_PAGE_LIMIT", ge=1)
    max_page_limit: int = Field(default=100, alias="MAX_PAGE_LIMIT", ge=1)
    strict_categories: bool = Field(default=False, alias="STRICT_CATEGORIES")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("distribution_database_url", mode="before")
    @classmethod
    def _blank_as_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return level

    @model_validator(mode="after")
    def _check_page_limits(self) -> "Settings":
        """Ensure the default page size is reachable under the maximum."""

        if self.default_page_limit > self.max_page_limit:
            raise ValueError("DEFAULT_PAGE_LIMIT must not exceed MAX_PAGE_LIMIT")
        return self

    @property
    def effective_distribution_database_url(self) -> str:
        """Return the user-ranking store URL, falling back to the main database."""

        return self.distribution_database_url or self.database_url

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
