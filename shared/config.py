"""
Shared configuration management for the tender listing services.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SEARCH_MODES = ("contains", "fts")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TENDERS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Relational store
    postgres_dsn: str = Field(default="postgresql://localhost:5432/tenders")
    postgres_min_pool: int = Field(default=2, ge=1)
    postgres_max_pool: int = Field(default=10, ge=1)
    postgres_command_timeout: float = Field(default=30.0, gt=0)

    # Cache
    redis_url: Optional[str] = Field(default=None)
    cache_enabled: bool = Field(default=True)
    cache_warming: bool = Field(default=True)
    cache_socket_timeout: float = Field(default=2.0, gt=0)
    cache_reconnect_interval: float = Field(default=5.0, ge=0)

    # Search
    search_mode: str = Field(default="contains")

    # Monitoring
    monitoring_enabled: bool = Field(default=True)
    monitoring_sample_size: int = Field(default=500, ge=1)
    monitoring_log_interval_seconds: float = Field(default=60.0, ge=0)
    monitoring_log_file: Optional[str] = Field(default=None)

    # CORS
    allowed_origins: str = Field(default="")

    @field_validator("search_mode", mode="before")
    @classmethod
    def _normalize_search_mode(cls, value):
        mode = str(value or "contains").strip().lower()
        return mode if mode in SEARCH_MODES else "contains"

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def full_text_search(self) -> bool:
        """True when search queries use the store's native full-text operator."""
        return self.search_mode == "fts"

    @property
    def cache_configured(self) -> bool:
        return self.cache_enabled and bool(self.redis_url)

    @property
    def cors_origins(self) -> List[str]:
        """Allowed CORS origins; an empty list or '*' means any origin."""
        origins = [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        if not origins or "*" in origins:
            return ["*"]
        return origins


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
