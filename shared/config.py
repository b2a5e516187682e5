"""
Shared configuration management for the User Auth Service.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AUTH_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="development")
    log_level: str = Field(default="info")
    log_json: bool = Field(default=True)

    # External services
    database_url: str = Field(default="postgresql://localhost:5432/users")
    redis_url: str = Field(default="redis://localhost:6379/0")
    kafka_bootstrap: str = Field(default="localhost:9092")
    dependency_connect_timeout_seconds: float = Field(default=2.0, gt=0)

    # Requests
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Security
    jwt_secret: str = Field(default="")
    jwt_expiry_hours: int = Field(default=24, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    allowed_roles: List[str] = Field(default_factory=lambda: ["user", "admin"])

    # Profile cache
    profile_cache_ttl_seconds: int = Field(default=300, gt=0)


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
