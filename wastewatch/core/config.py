"""
WasteWatch AI - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    log_level: str = "INFO"

    # Gemini (image oracle)
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    oracle_max_retries: int = 3

    # Object storage
    storage_base_url: str = "https://storage.googleapis.com"
    storage_access_token: Optional[str] = None
    default_bucket: Optional[str] = None

    # Document database
    database_url: str = "sqlite:///wastewatch.db"
    reports_collection: str = "reports"
    users_collection: str = "users"

    # Pipeline
    correlation_legacy_fallback: bool = True
    stuck_report_hours: int = 24


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
