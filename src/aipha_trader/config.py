"""
Configuration management using Pydantic settings.

All configuration values are loaded from environment variables or .env file.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server Configuration
    port: int = 8080
    host: str = "127.0.0.1"
    reload: bool = False
    debug: bool = False  # Enables ?session_id= query carrier
    cors_origins: list[str] = ["http://localhost:3000"]

    # Session Management
    session_ttl: int = 86400  # Fixed session lifetime in seconds (24 hours)
    session_cleanup_interval: int = 300  # Sweep every 5 minutes
    session_cookie_name: str = "session_id"
    session_cookie_secure: bool = False
    session_lock_stripes: int = 64

    # Scheduled maintenance
    cron_secret: Optional[str] = None

    # Market Data Cache
    market_fresh_seconds: int = 300
    market_hard_ceiling_seconds: int = 3600
    market_sync_keys: list[str] = ["indices", "ticker"]

    # Upstream providers
    upstream_timeout: float = 10.0
    upstream_max_retries: int = 3
    upstream_retry_delay: float = 0.1
    upstream_requests_per_minute: int = 30
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: Optional[str] = None
    coinmarketcap_base_url: str = "https://pro-api.coinmarketcap.com/v3"
    coinmarketcap_api_key: Optional[str] = None
    hyperliquid_base_url: str = "https://api.hyperliquid.xyz"
    hyperliquid_requests_per_minute: int = 600

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Singleton Settings instance loaded from environment.

    Note:
        Uses lru_cache to ensure settings are loaded only once.
        To reload settings (e.g., in tests), call get_settings.cache_clear()
    """
    return Settings()
