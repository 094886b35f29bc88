"""FunnelCache: Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"

    # ── Google Ads API ──
    google_ads_developer_token: str = ""
    google_ads_client_id: str = ""
    google_ads_client_secret: str = ""
    google_ads_login_customer_id: Optional[str] = None
    google_ads_api_version: str = "v18"
    google_ads_base_url: str = "https://googleads.googleapis.com"
    google_oauth_token_url: str = "https://oauth2.googleapis.com/token"

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    cache_refresh_minutes: int = 180  # Background refresh of current periods

    # ── Smart cache ──
    cache_ttl_minutes: int = 15
    cache_wait_timeout_seconds: float = 60.0
    store_write_retries: int = 1

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/funnelcache.db"
        return "sqlite:///./funnelcache.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
