"""Application configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_env: str = "development"
    database_url: str = "sqlite:///./catalog_import.db"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Admin gate for the import endpoints (empty disables the check in development)
    admin_token: str = ""

    # Uploads
    max_upload_bytes: int = 10 * 1024 * 1024

    # Product resolution
    match_threshold: float = 0.82
    ambiguous_gap: float = 0.05
    suggestion_min_score: float = 0.35
    suggestion_limit: int = 8

    # Audit webhooks
    webhook_timeout: float = 5.0

    # Fallback names for rows without a category or product name
    default_category_name: str = "Uncategorized"
    default_product_name: str = "Untitled"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
