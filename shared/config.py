"""
Shared configuration management for the Sentinel gateway.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=AliasChoices("SENTINEL_ENV", "env"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("SENTINEL_LOG_LEVEL", "log_level"))

    # Configuration collaborator
    services_config_path: str = Field(
        default="services.yaml",
        validation_alias=AliasChoices("SERVICES_CONFIG_PATH", "services_config_path"),
    )
    agents_config_path: str = Field(
        default="agents.yaml",
        validation_alias=AliasChoices("AGENTS_CONFIG_PATH", "agents_config_path"),
    )

    # Legacy single-token mode
    agent_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("AGENT_TOKEN", "agent_token"))

    # Request handling
    trust_proxy: bool = Field(default=True, validation_alias=AliasChoices("SENTINEL_TRUST_PROXY", "trust_proxy"))
    max_body_bytes: int = Field(
        default=1024 * 1024,
        validation_alias=AliasChoices("SENTINEL_MAX_BODY_BYTES", "max_body_bytes"),
    )


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = Field(default=8080, validation_alias=AliasChoices("PORT", "port"))
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HOST", "host"))


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
