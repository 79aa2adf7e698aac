"""
Shared configuration management for the Ability Tool Gateway.
"""

import secrets
from typing import Dict, List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ABILITY_GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Shared store; unset means a process-local in-memory store
    redis_url: Optional[str] = None

    # Routing
    api_prefix: str = "/webmcp/v1"

    # First-run settings values
    enabled_default: bool = True
    discovery_public_default: bool = False
    exposed_tools_default: List[str] = Field(default_factory=list)

    # Rate limiting (requests per window)
    execution_rate_limit: int = 30
    execution_global_ceiling: int = 100
    discovery_rate_limit: int = 60
    rate_limit_window_seconds: int = 60
    tool_rate_limits: Dict[str, int] = Field(default_factory=dict)

    # Execution
    max_input_bytes: int = 100 * 1024
    execution_timeout_seconds: Optional[float] = 30.0

    # Discovery caching
    tools_cache_ttl_seconds: int = 3600
    discovery_max_age_seconds: int = 300

    # Security
    nonce_secret: SecretStr = Field(default_factory=lambda: SecretStr(secrets.token_urlsafe(32)))
    nonce_ttl_seconds: int = 12 * 60 * 60
    nonce_header: str = "X-WebMCP-Nonce"
    session_secret: SecretStr = Field(default_factory=lambda: SecretStr(secrets.token_urlsafe(32)))
    session_cookie: str = "gateway_session"
    api_keys: Dict[str, str] = Field(default_factory=dict)
    trust_proxy_headers: bool = False


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8000
    host: str = "0.0.0.0"


class GatewayConfig(ServiceConfig):
    """Configuration for the tool gateway service."""

    service_name: str = "gateway"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
