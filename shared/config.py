"""
Shared configuration management for the tenant gateway services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="development")
    log_level: str = Field(default="info")

    # Shared key/value store (tenant cache, rate limits, usage counters).
    # "memory://" selects the process-local store.
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Tenant registry
    registry_url: str = Field(default="http://localhost:54321")
    registry_key: str = Field(default="")

    # Tenant config cache
    config_cache_ttl_seconds: int = Field(default=300, ge=1)

    # Rate limiting
    default_max_api_calls_per_hour: int = Field(default=10000, ge=1)
    rate_limit_window_seconds: int = Field(default=3600, ge=1)

    # Usage metering
    usage_flush_every: int = Field(default=100, ge=1)
    usage_retention_days: int = Field(default=7, ge=1)

    # Upstream proxying
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)

    # Feature flags
    flags_file: Optional[str] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
