"""
Shared configuration management for the cache aspect.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Environment-driven settings for the cache registry."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    service_name: str = Field(default="cache_aspect")
    log_level: str = Field(default="info")

    # Registry defaults
    enabled: bool = Field(default=True)
    default_ttl_ms: Optional[int] = Field(default=None, ge=0)
    logger: str = Field(default="json", pattern="^(json|silent)$")

    # Stores
    store_capacity: Optional[int] = Field(default=None, gt=0)
    redis_url: Optional[str] = Field(default=None)
    redis_prefix: str = Field(default="cache:")


def get_settings(**overrides) -> CacheSettings:
    """Get cache settings, with explicit overrides taking precedence over env."""
    return CacheSettings(**overrides)
