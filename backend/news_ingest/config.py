"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QualitySettings(BaseSettings):
    """Thresholds and deductions for the article quality validator."""

    model_config = SettingsConfigDict(env_prefix="QUALITY_")

    min_valid_score: int = Field(
        default=50,
        description="Articles scoring at or above this are admitted",
    )

    # Length limits
    min_title_length: int = Field(default=10, ge=0)
    max_title_length: int = Field(default=200, ge=1)
    min_content_length: int = Field(default=50, ge=0)

    # Recency window
    max_age_days: float = Field(default=30.0, gt=0)
    max_future_days: float = Field(default=1.0, ge=0)

    # Deductions
    title_too_short_penalty: int = Field(default=20, ge=0)
    title_too_long_penalty: int = Field(default=10, ge=0)
    content_too_short_penalty: int = Field(default=30, ge=0)
    spam_keyword_penalty: int = Field(default=15, ge=0)
    invalid_url_penalty: int = Field(default=25, ge=0)
    too_old_penalty: int = Field(default=10, ge=0)
    future_date_penalty: int = Field(default=20, ge=0)

    spam_keywords: list[str] = Field(
        default=[
            "click here",
            "buy now",
            "limited time",
            "act fast",
            "guaranteed",
        ],
    )

    @field_validator("spam_keywords")
    @classmethod
    def lowercase_keywords(cls, v: list[str]) -> list[str]:
        return [k.strip().lower() for k in v if k.strip()]


class DedupSettings(BaseSettings):
    """Parameters for near-duplicate detection."""

    model_config = SettingsConfigDict(env_prefix="DEDUP_")

    title_similarity_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Jaccard similarity above which two titles are duplicates",
    )
    tracking_params: list[str] = Field(
        default=[
            "utm_source",
            "utm_medium",
            "utm_campaign",
            "utm_content",
            "utm_term",
            "ref",
            "source",
        ],
    )
    history_window_days: int | None = Field(
        default=None,
        ge=1,
        description="Also compare against articles stored in the last N days (None = off)",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "News Ingest"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./news_ingest.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # HTTP fetching
    user_agent: str = Field(default="NewsIngest Aggregator/1.0")
    fetch_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for a single HTTP request",
    )
    source_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound on fetching and parsing one source",
    )
    max_payload_bytes: int = Field(default=5_000_000, gt=0)
    max_items_per_source: int = Field(default=200, ge=1)

    # Orchestration
    concurrency_limit: int = Field(default=5, ge=1)
    summary_max_length: int = Field(default=200, ge=10)
    source_quality_smoothing: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Weight of one fetch's mean article quality in the source quality score",
    )

    # Scheduler
    fetch_interval_minutes: int = Field(
        default=15,
        ge=1,
        description="Interval between ingestion cycles",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Nested
    quality: QualitySettings = Field(default_factory=QualitySettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
