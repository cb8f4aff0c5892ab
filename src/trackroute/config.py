"""Centralized configuration for trackroute.

Environment-driven settings via pydantic-settings. Routing behavior set here
only provides defaults for ``RoutingBuilder.from_settings``; a configuration
that is already built is never affected by later environment changes.

Usage:
    from trackroute.config import get_settings

    settings = get_settings()
    debug = settings.routing.debug_mode
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RoutingSettings(BaseSettings):
    """Global routing toggles."""

    model_config = SettingsConfigDict(env_prefix="TRACKROUTE_ROUTING_")

    debug_mode: bool = Field(default=False, description="Apply debug-only rules instead of production-only rules")
    enable_sampling: bool = Field(default=True, description="Apply rule sample rates")
    enable_consent_checking: bool = Field(default=True, description="Enforce rule consent requirements")
    honor_event_consent_flag: bool = Field(
        default=False, description="Also block events flagged requires_consent without general consent"
    )


class SamplingSettings(BaseSettings):
    """Defaults for adaptive sampling rules created by the builder."""

    model_config = SettingsConfigDict(env_prefix="TRACKROUTE_SAMPLING_")

    adaptive_window_seconds: float = Field(default=60.0, gt=0.0, description="Adaptive sampling window length")
    adaptive_target_events: int = Field(default=1000, gt=0, description="Target sampled events per window")


class APIConfig(BaseSettings):
    """API service configuration."""

    model_config = SettingsConfigDict(env_prefix="TRACKROUTE_API_")

    host: str = Field(default="0.0.0.0", description="API host address")
    port: int = Field(default=8000, ge=1, le=65535, description="API port")
    api_key: Optional[str] = Field(default=None, description="API key for authentication (None = disabled)")
    require_auth: bool = Field(default=False, description="Require API key authentication")
    config_path: Optional[Path] = Field(
        default=None, description="JSON routing configuration served by the API (None = built-in defaults)"
    )


class Settings(BaseSettings):
    """Root settings class aggregating all configuration.

    Environment variables:
        TRACKROUTE_SEED: Seed for uniform sampling (unset = nondeterministic)
        TRACKROUTE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)

    Nested config environment variables use prefixes:
        TRACKROUTE_ROUTING_* - Routing toggles
        TRACKROUTE_SAMPLING_* - Adaptive sampling defaults
        TRACKROUTE_API_* - API service
    """

    model_config = SettingsConfigDict(
        env_prefix="TRACKROUTE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    seed: Optional[int] = Field(default=None, description="Random seed for uniform sampling")
    log_level: str = Field(default="INFO", description="Logging level")

    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    sampling: SamplingSettings = Field(default_factory=SamplingSettings)
    api: APIConfig = Field(default_factory=APIConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings loaded once from environment variables and .env file.
    """
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure logging based on settings.

    Args:
        settings: Settings instance, or None to use get_settings().
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
