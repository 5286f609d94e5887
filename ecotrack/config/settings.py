"""
EcoTrack Settings

Environment driven configuration, grouped by concern. Each group reads its
own prefix (POSTGRES_, SHOPIFY_, SYNC_); a few operational knobs keep their
conventional unprefixed names (LOG_LEVEL, ADMIN_API_TOKEN, METRICS_PUBLIC).
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="ecotrack", alias="database", description="Database name")
    user: str = Field(default="ecotrack", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_size: int = Field(default=10, description="Connections kept open per worker")
    max_overflow: int = Field(default=5, description="Extra connections allowed under load")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from parts"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class ShopifySettings(BaseSettings):
    """Shopify Admin API and webhook configuration"""

    model_config = SettingsConfigDict(env_prefix="SHOPIFY_")

    api_secret: SecretStr = Field(default="shpss-change-me", description="App secret used to sign webhooks")
    api_version: str = Field(default="2024-10", description="Admin API version")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    metafield_namespace: str = Field(default="custom", description="Namespace of sustainability metafields")
    verify_webhooks: bool = Field(default=True, description="Reject webhooks with a bad HMAC")


class SyncSettings(BaseSettings):
    """Catalog synchronization and bulk import configuration"""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    page_size: int = Field(default=50, description="Products per catalog page")
    max_products: int = Field(default=1000, description="Record cap for one reconciliation pass")
    prune_orphans: bool = Field(default=True, description="Delete local products missing from an exhaustive fetch")
    import_batch_size: int = Field(default=5, description="CSV rows processed concurrently")
    import_batch_delay_seconds: float = Field(default=1.0, description="Pause between CSV batches")

    # Copenhagen, used when the shop has no location coordinates
    default_warehouse_latitude: float = Field(default=55.6761, description="Fallback warehouse latitude")
    default_warehouse_longitude: float = Field(default=12.5683, description="Fallback warehouse longitude")


class SecuritySettings(BaseSettings):
    """Security and Authentication Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    admin_api_token: Optional[SecretStr] = Field(
        default=None, alias="ADMIN_API_TOKEN", description="Bearer token for admin endpoints"
    )

    # Rate limiting
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Rate limit requests")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Metrics endpoint
    metrics_public: bool = Field(
        default=False, alias="METRICS_PUBLIC", description="Serve /metrics to proxied public traffic"
    )
    collect_process_metrics: bool = Field(
        default=True, description="Register process and platform collectors"
    )


class Settings(BaseSettings):
    """Top-level settings; read once per process through get_settings()"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")
    api_workers: int = Field(default=1, alias="API_WORKERS", description="API workers")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    shopify: ShopifySettings = Field(default_factory=ShopifySettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    return Settings()

