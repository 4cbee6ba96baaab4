"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from study_scheduler.config import settings

    # Access settings
    db_url = settings.DATABASE_URL or settings.POSTGRES_URL
    threshold = settings.SRS_MASTERY_REPETITIONS
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Study Scheduler"
    DEBUG: bool = False

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "studyscheduler"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "studyscheduler"

    # Full SQLAlchemy URL, overrides the POSTGRES_* fields when set
    DATABASE_URL: Optional[str] = None

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def POSTGRES_URL_SYNC(self) -> str:
        """Sync PostgreSQL connection URL for Alembic migrations."""
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def SQLALCHEMY_URL(self) -> str:
        """URL the async engine connects to."""
        return self.DATABASE_URL or self.POSTGRES_URL

    # SM-2 scheduling
    SRS_DEFAULT_EASE_FACTOR: float = 2.5
    SRS_MIN_EASE_FACTOR: float = 1.3
    SRS_SUCCESS_THRESHOLD: int = 3  # Qualities below this are lapses
    SRS_FIRST_INTERVAL_DAYS: int = 1
    SRS_SECOND_INTERVAL_DAYS: int = 6
    SRS_LAPSE_INTERVAL_DAYS: int = 0  # 0 = due again immediately
    SRS_MASTERY_REPETITIONS: int = 3
    SRS_MASTERY_MIN_INTERVAL_DAYS: int = 0  # 0 = no interval requirement
    SRS_MAXIMUM_INTERVAL_DAYS: int = 0  # 0 = intervals grow without a cap
    SRS_LEECH_THRESHOLD: int = 8  # Consecutive lapses that flag a leech

    # Review queue
    REVIEW_DEFAULT_LIMIT: int = 50
    REVIEW_MAX_LIMIT: int = 500
    REVIEW_MAX_RETRIES: int = 3
    REVIEW_RETRY_WAIT_SECONDS: float = 0.05

    # Statistics
    STATS_SCAN_CHUNK_SIZE: int = 500

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
