from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Prospector Contact Discovery"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Providers
    apollo_api_key: str | None = None
    apollo_base_url: str = "https://api.apollo.io"
    hunter_api_key: str | None = None
    hunter_base_url: str = "https://api.hunter.io"
    perplexity_api_key: str | None = None
    perplexity_base_url: str = "https://api.perplexity.ai"
    provider_timeout_seconds: float = 15.0
    provider_retry_attempts: int = 3
    provider_retry_base_delay: float = 0.5

    # AI name scoring / enrichment
    enrichment_model: str = "sonar"
    enrichment_temperature: float = 0.1
    name_scoring_model: str = "sonar"
    name_scoring_temperature: float = 0.1

    # Website crawler
    crawler_max_depth: int = 2
    crawler_max_pages: int = 20
    crawler_timeout_seconds: float = 10.0
    crawler_concurrency: int = 5
    crawler_user_agent: str = "Mozilla/5.0 (compatible; EmailDiscoveryBot/1.0)"

    # Billing
    billing_api_base_url: str | None = None
    billing_api_key: str | None = None
    email_search_credit_cost: int = 20
    local_credit_balance: int = 250

    # Orchestrator
    idempotency_ttl_seconds: int = 300

    # Security
    cors_origins: list[str] = []

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "discovery"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
