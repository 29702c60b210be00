# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Configuration management using Pydantic Settings."""

from beartype import beartype
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with immutable configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KEYWARD_",
        env_file=None,
        env_file_encoding="utf-8",
        frozen=True,  # Immutable settings
        validate_default=True,
        extra="forbid",
    )

    # Environment
    app_env: str = Field(
        default="development",
        pattern="^(development|staging|production|test)$",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level",
    )

    # Key material
    key_prefix: str = Field(
        default="km_",
        min_length=1,
        max_length=16,
        description="Prefix prepended to every issued secret",
    )
    secret_bytes: int = Field(
        default=32,
        ge=32,
        le=128,
        description="Random bytes per secret (32 bytes = 256 bits)",
    )
    min_expiration_seconds: int = Field(
        default=300,
        ge=0,
        le=86400,
        description="Minimum distance of a non-zero expiresAt from creation time",
    )

    # Field limits
    max_name_length: int = Field(default=255, ge=1, le=4096)
    max_owner_length: int = Field(default=255, ge=1, le=4096)
    max_scope_length: int = Field(default=100, ge=1, le=1024)
    max_scopes: int = Field(default=50, ge=1, le=1000)
    admin_scope_prefix: str = Field(
        default="admin:",
        min_length=1,
        description="Reserved administrative scope namespace",
    )

    # Rotation
    default_grace_period_days: int = Field(
        default=7,
        ge=0,
        le=365,
        description="Grace window applied when a rotation does not specify one",
    )
    min_grace_period_days: int = Field(default=0, ge=0, le=365)
    max_grace_period_days: int = Field(default=90, ge=0, le=365)

    # Pagination
    default_page_limit: int = Field(default=100, ge=1, le=1000)
    max_page_limit: int = Field(default=1000, ge=1, le=10000)
    audit_page_limit: int = Field(default=50, ge=1, le=1000)
    cleanup_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Store page size used by the cleanup sweep",
    )

    # Store
    store_backend: str = Field(
        default="memory",
        pattern="^(memory|redis)$",
        description="Key-value backend implementation",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        min_length=1,
        description="Redis connection URL (redis backend only)",
    )
    redis_namespace: str = Field(
        default="keyward",
        min_length=1,
        description="Prefix for every Redis key written by the store",
    )
    store_timeout_seconds: float | None = Field(
        default=5.0,
        gt=0,
        le=300.0,
        description="Per-call store timeout when no caller deadline is set",
    )

    @field_validator("max_grace_period_days")
    @classmethod
    def validate_grace_bounds(cls: type["Settings"], v: int, info: ValidationInfo) -> int:
        """Ensure the grace range is not inverted."""
        if "min_grace_period_days" in info.data:
            min_days = info.data["min_grace_period_days"]
            if v < min_days:
                raise ValueError(
                    f"max_grace_period_days ({v}) must be >= min_grace_period_days ({min_days})"
                )
            default_days = info.data.get("default_grace_period_days")
            if default_days is not None and not min_days <= default_days <= v:
                raise ValueError(
                    "default_grace_period_days must lie within the grace bounds"
                )
        return v

    @field_validator("max_page_limit")
    @classmethod
    def validate_page_limits(cls: type["Settings"], v: int, info: ValidationInfo) -> int:
        """Ensure the default page size fits under the maximum."""
        if "default_page_limit" in info.data and v < info.data["default_page_limit"]:
            raise ValueError("max_page_limit must be >= default_page_limit")
        return v

    @property
    @beartype
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    @beartype
    def min_expiration_ms(self) -> int:
        """Minimum expiry horizon in milliseconds."""
        return self.min_expiration_seconds * 1000


_settings: Settings | None = None


@beartype
def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


@beartype
def clear_settings_cache() -> None:
    """Clear settings cache (for testing)."""
    global _settings
    _settings = None
