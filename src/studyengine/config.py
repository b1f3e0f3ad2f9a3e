"""
Configuration settings for the study engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    study_db_path: Path = Field(
        default=Path.home() / ".studyengine" / "state.db",
        description="SQLite file holding cards, review log and activity",
    )

    # ========================================
    # Calendar
    # ========================================
    study_timezone: str = Field(
        default="UTC",
        description="IANA time zone that defines where a study day starts",
    )

    # ========================================
    # Sessions
    # ========================================
    study_due_limit: int = Field(
        default=20,
        ge=1,
        description="Maximum due cards loaded into one session",
    )
    study_persist_retries: int = Field(
        default=2,
        ge=0,
        description="Extra attempts when saving a reviewed card fails",
    )

    # ========================================
    # Goals (initial values; later changes are stored in the database)
    # ========================================
    study_daily_goal_minutes: int = Field(
        default=30,
        ge=5,
        le=480,
        description="Daily study goal in minutes",
    )
    study_weekly_goal_days: int = Field(
        default=5,
        ge=1,
        le=7,
        description="Weekly goal in study days",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )

    @field_validator("study_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        if value == "UTC":
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value}") from exc
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
