"""
Configuration module for the newsreader client.

This module provides the Settings class that loads and validates environment
variables for the remote news API, the local article cache and logging. It uses
Pydantic BaseSettings for type validation and default value handling.
"""

from __future__ import annotations

import sys
from typing import Optional

from pydantic import Field, ValidationError, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values are read case-insensitively from the process environment and an
    optional ``.env`` file in the working directory.
    """

    # News API Configuration
    newsapi_base_url: str = Field(
        default="https://newsapi.org/v2/",
        description="Base URL of the news API (top-headlines and everything endpoints)"
    )
    newsapi_api_key: Optional[str] = Field(
        default=None,
        repr=False,
        description="API key sent in the X-Api-Key header on every request"
    )
    newsapi_timeout_seconds: float = Field(
        default=20.0,
        ge=1.0,
        le=120.0,
        description="Request timeout (in seconds) for news API calls"
    )
    newsapi_max_attempts: int = Field(
        default=3,
        ge=1,
        le=6,
        description="Attempts made for a request that fails without a response"
    )
    newsapi_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Base backoff delay (seconds) between transport retries"
    )

    # Feed Configuration
    headline_country: str = Field(
        default="us",
        description="Country code used for the top headlines feed"
    )
    topic_query: str = Field(
        default="technology",
        description="Fixed topic query used for the general news feed"
    )
    topic_language: str = Field(
        default="en",
        description="Language filter for the general news feed"
    )
    topic_exclude_domains: str = Field(
        default="",
        description="Comma-separated domains excluded from the general news feed"
    )
    topic_sort_by: str = Field(
        default="publishedAt",
        description="Sort order for the general news feed (publishedAt, relevancy, popularity)"
    )

    # Cache Configuration
    cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        le=86400,
        description="Time-to-live of an in-memory feed snapshot"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/news.sqlite",
        description="SQLAlchemy database URL for the article store"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(
        default=False,
        description="Render log events as JSON instead of console output"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def has_api_key(self) -> bool:
        """Check if a news API key is available."""
        return bool(self.newsapi_api_key)

    @property
    def cache_ttl_ms(self) -> int:
        return self.cache_ttl_seconds * 1000


def get_settings() -> Settings:
    """
    Get application settings instance.

    Returns:
        Settings: Validated application settings

    Raises:
        ValidationError: If environment variables are invalid
    """
    try:
        return Settings()
    except ValidationError as e:
        print(f"Configuration validation error: {e}", file=sys.stderr)
        raise


def validate_env_cli() -> None:
    """
    CLI command to validate environment configuration.

    This function can be called via: python -m newsreader.app.core.config --check
    """
    try:
        settings = get_settings()
        print("✅ Environment configuration is valid")
        print(f"News API: {settings.newsapi_base_url}")
        print(f"News API key: {'✅ Set' if settings.has_api_key else '❌ Not set'}")
        print(f"Headline country: {settings.headline_country}")
        print(f"Topic query: {settings.topic_query} ({settings.topic_language})")
        print(f"Cache TTL: {settings.cache_ttl_seconds} seconds")
        print(f"Database URL: {settings.database_url}")
        print(f"Log level: {settings.log_level}")
    except ValidationError as e:
        print("❌ Environment configuration is invalid:")
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            print(f"  - {field}: {error['msg']}")
        sys.exit(1)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Configuration validation utility")
    parser.add_argument("--check", action="store_true", help="Validate environment configuration")

    args = parser.parse_args()

    if args.check:
        validate_env_cli()
    else:
        parser.print_help()
