from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # MongoDB (durable cache tier, API keys, usage logs)
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "ogify"
    mongo_max_pool_size: int = 10
    mongo_timeout_ms: int = 5000

    # Redis (fast cache tier, rate-limit counters). Unset disables it.
    redis_url: Optional[str] = None
    redis_timeout: float = 2.0

    # Cache
    cache_ttl_hours: int = 24
    cache_key_prefix: str = "ogify:meta:"
    cache_purge_interval: float = 3600.0

    # Rate limiting
    rate_limit_window_ms: int = 60_000
    rate_limit_anonymous_max: int = 10
    rate_limit_default_max: int = 60
    rate_limit_sweep_interval: float = 60.0

    # HTTP fetcher
    http_timeout: float = 10.0
    http_max_retries: int = 3
    http_verify_ssl: bool = True  # set False behind corporate SSL-inspection proxies
    http_user_agent: str = "Mozilla/5.0 (compatible; Ogify/1.0; +https://ogify.io)"

    # API
    batch_max_urls: int = 10

    # Logging
    log_level: str = "INFO"

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_hours * 60 * 60


settings = Settings()
