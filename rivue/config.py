"""Application configuration loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralised settings — no hardcoded values anywhere else."""

    # Database (only used when cache_backend == "sql")
    database_url: str = "sqlite+aiosqlite:///./rivue.db"
    cache_backend: Literal["memory", "sql"] = "memory"

    # App Store Connect credentials (server-side, optional)
    apple_issuer_id: Optional[str] = None
    apple_key_id: Optional[str] = None
    apple_private_key_base64: Optional[str] = None
    apple_private_key_path: Optional[str] = None

    # Upstreams
    apple_api_base: str = "https://api.appstoreconnect.apple.com/v1"
    rss_base_url: str = "https://itunes.apple.com"
    default_territory: str = "USA"
    default_countries: str = "us"

    # Fetch behaviour
    api_max_attempts: int = Field(3, ge=1)
    retry_backoff_seconds: float = Field(1.0, ge=0)
    page_delay_seconds: float = Field(0.1, ge=0)
    max_concurrent_requests: int = Field(5, ge=1)
    http_timeout_seconds: float = Field(10.0, gt=0)
    fetch_timeout_seconds: float = Field(120.0, gt=0)
    api_max_pages: int = Field(50, ge=1)
    rss_max_pages: int = Field(10, ge=1)

    # Cache
    reviews_ttl_seconds: int = 7_200
    metadata_ttl_seconds: int = 86_400
    cache_sweep_interval_seconds: float = 300.0
    cache_max_entries: int = 10_000

    # Security
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    # App
    app_env: str = "development"
    log_level: str = "INFO"

    # Derived
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]

    @property
    def default_countries_list(self) -> list[str]:
        """Return DEFAULT_COUNTRIES as a list of lowercase country codes."""
        return [c.strip().lower() for c in self.default_countries.split(",") if c.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
