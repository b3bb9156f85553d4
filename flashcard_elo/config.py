"""
Configuration management for the flashcard rating engine
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database Configuration
    database_url: str = Field(default="sqlite:///data/flashcards.db")
    database_busy_timeout_ms: int = Field(default=30000)

    # Application Configuration
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    # Rating Configuration
    default_rating: float = Field(default=1200.0)
    min_rating: float = Field(default=800.0)
    max_rating: float = Field(default=2000.0)
    k_factor: float = Field(default=32.0)

    # Curve selection: one variant per pipeline
    dampening_curve: Literal["linear", "exponential"] = Field(default="linear")
    streak_curve: Literal["flat", "progressive"] = Field(default="flat")
    recency_curve: Literal["daily", "granular"] = Field(default="daily")

    # Session Configuration
    min_reviews_to_finalize: int = Field(default=3)
    streak_lookback: int = Field(default=10)

    # Spaced Repetition Configuration
    default_easiness_factor: float = Field(default=2.5)
    min_easiness_factor: float = Field(default=1.3)
    max_easiness_factor: float = Field(default=3.0)
    max_interval_days: int = Field(default=365)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_database_path() -> str:
    """Get the database file path from URL"""
    settings = get_settings()
    if settings.database_url.startswith("sqlite:///"):
        return settings.database_url.replace("sqlite:///", "")
    return "data/flashcards.db"
