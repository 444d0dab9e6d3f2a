"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SIFT_",
        case_sensitive=False,
        extra="ignore",
    )

    # Scoring service
    scoring_api_url: str = Field(
        default="http://localhost:8787", description="Base URL of the site analysis / ranking service"
    )
    scoring_timeout: float = Field(default=20.0, description="HTTP request timeout in seconds")

    # Storage
    db_path: str = Field(default="data/sift.db", description="SQLite file backing durable storage")
    history_max_entries: int = Field(default=50, description="Research history cap")
    history_max_age_days: int = Field(default=30, description="Drop history entries unused for this long")

    # Matching and ranking
    site_match_threshold: int = Field(default=50, description="Minimum site match score (exclusive)")
    ranking_score_threshold: int = Field(default=50, description="Minimum product score shown (exclusive)")
    max_ranked_products: int = Field(default=15, description="Products sent to the ranking service")
    max_shown_products: int = Field(default=5, description="Ranked products shown per page")
    site_cache_ttl: float = Field(default=3600.0, description="Per-domain site analysis cache TTL in seconds")

    # Extraction
    extraction_cache_ttl: float = Field(default=2.0, description="Scrape cache lifetime in seconds")
    extraction_settle_delay: float = Field(default=1.0, description="Delay before the first scrape")
    extraction_wait_budget: float = Field(default=8.0, description="Max seconds to wait for products to render")
    extraction_poll_interval: float = Field(default=0.8, description="Re-scrape interval while waiting")

    # Message channel
    message_timeout: float = Field(default=30.0, description="Upper bound for any message handler")
    max_message_bytes: int = Field(default=512 * 1024, description="Largest accepted message payload")

    # Application Configuration
    app_title: str = Field(default="Sift", description="Application title")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    log_json: bool = Field(default=True, description="Use JSON log format")
    log_file: str | None = Field(default=None, description="Optional log file path")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
