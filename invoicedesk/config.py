"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./invoicedesk.db"

    # Blob storage for uploaded document bytes
    upload_dir: Path = Path("./uploads")
    max_upload_size_mb: int = 25
    allowed_extensions: List[str] = ["pdf", "tiff", "jpg", "jpeg", "png"]

    # Processing worker
    worker_count: int = 4

    # Invoicing
    payment_terms_days: int = 30

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # Application
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    upload_rate_limit: str = "20/hour"

    # OCR Settings
    tesseract_cmd: Optional[str] = None

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_extensions(cls, value: List[str]) -> List[str]:
        return [ext.lower().lstrip(".") for ext in value]

    @field_validator("worker_count")
    @classmethod
    def positive_worker_count(cls, value: int) -> int:
        if value < 1:
            raise ValueError("worker_count must be at least 1")
        return value

    @property
    def max_upload_size_bytes(self) -> int:
        """Get maximum upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
