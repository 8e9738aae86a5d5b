"""
Centralized configuration for migratable.

Uses Pydantic BaseSettings for environment variable integration
and validation.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (MIGRATABLE_*)
3. .env file
4. Default values

Example:
    from migratable.config import get_config

    config = get_config()
    print(config.storage_type)  # From MIGRATABLE_STORAGE_TYPE or default

    # Override at runtime
    config = get_config(registration_slots=10)
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MigratableConfig(BaseSettings):
    """
    Central configuration for migratable.

    All settings can be overridden via environment variables
    prefixed with MIGRATABLE_.

    Example:
        export MIGRATABLE_STORAGE_TYPE=file
        export MIGRATABLE_REGISTRATION_SLOTS=32
    """

    model_config = SettingsConfigDict(
        env_prefix="MIGRATABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service identification
    service_name: str = Field(
        default="migratable",
        description="Service name for log and telemetry attribution",
    )

    # Storage backend
    storage_type: Literal["memory", "file"] = Field(
        default="file",
        description="Storage backend type",
    )
    storage_dir: str = Field(
        default="~/.migratable/storage",
        description="Directory for file-based storage backend",
    )
    namespace: str = Field(
        default="default",
        description="Storage namespace; one contract instance per namespace",
    )

    # Addressing
    address_prefix: Optional[str] = Field(
        default=None,
        description="Required prefix for human addresses (e.g. 'secret1')",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # Coordinator defaults
    admin_gated_registration: bool = Field(
        default=False,
        description="Only the admin may register subscribers",
    )
    registration_slots: Optional[int] = Field(
        default=None,
        ge=0,
        description="Registration capacity for new instances (unset = unlimited)",
    )
    reciprocal_subscriptions: bool = Field(
        default=True,
        description="Honour reciprocal subscription requests",
    )
    consume_slot_on_duplicate: bool = Field(
        default=True,
        description="A duplicate registration still consumes a slot",
    )

    @field_validator("storage_dir")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in paths."""
        return os.path.expanduser(os.path.expandvars(v))


# Global singleton
_config: Optional[MigratableConfig] = None


def get_config(**overrides) -> MigratableConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        MigratableConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = MigratableConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
