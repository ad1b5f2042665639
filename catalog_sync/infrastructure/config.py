"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://catalog:catalog_dev_password@db:5432/catalog"

    # Authentication
    admin_api_key: str = "dev-admin-key-change-in-production"

    # Structured feed
    structured_api_url: str = "https://api.example-supplier.test/api/v1"
    structured_api_token: str = ""
    structured_timeout_seconds: float = 30.0
    structured_retry_attempts: int = 3
    structured_retry_delay_seconds: float = 2.0
    structured_retry_max_delay_seconds: float = 30.0

    # Scraped feed
    scraped_api_url: str = "https://feed.example-scraper.test/api.php"
    scraped_access_token: str = ""
    scraped_root_category_slug: str = "videonablyudenie"
    scraped_page_size: int = 100
    scraped_max_pages: int = 50
    scraped_page_delay_seconds: float = 0.5
    scraped_cache_ttl_seconds: float = 300.0
    scraped_timeout_seconds: float = 30.0
    scraped_retry_attempts: int = 3
    scraped_retry_delay_seconds: float = 2.0
    scraped_retry_max_delay_seconds: float = 30.0

    # Sync
    sync_enabled: bool = True
    sync_batch_size: int = 30
    sync_flush_every: int = 10
    sync_max_chunk_duration_seconds: float = 300.0
    sync_chunk_pause_seconds: float = 0.5
    sync_excluded_category_ids: list[int] = []
    sync_category_aliases_path: str | None = "config/category_aliases.json"

    # Logging
    log_level: str = "INFO"

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
