"""
Shared configuration management for the offline cache service.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STATIC_MANIFEST = ["/", "/index.html", "/manifest.json", "/robots.txt"]
DEFAULT_ASSET_EXTENSIONS = [
    "js", "css", "png", "jpg", "jpeg", "gif", "svg",
    "woff", "woff2", "ttf", "eot", "ico",
]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINE_CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Site being fronted
    site_origin: str = Field(default="https://kontrollitud.ee")
    upstream_url: str = Field(default="http://localhost:3000")
    upstream_timeout: float = Field(default=30.0)

    # Cache generations
    cache_prefix: str = Field(default="kontrollitud")
    cache_version: int = Field(default=1)
    static_manifest: List[str] = Field(default_factory=lambda: list(DEFAULT_STATIC_MANIFEST))
    offline_document: str = Field(default="/index.html")
    asset_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_ASSET_EXTENSIONS))
    api_prefix: str = Field(default="/api/")
    skip_waiting_on_install: bool = Field(default=True)

    # Cache storage
    storage_backend: str = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_namespace: str = Field(default="offline_cache")

    # Worker admin routes
    admin_prefix: str = Field(default="/_worker")

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4317")
    enable_console_tracing: bool = Field(default=False)


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
