# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Configuration management using Pydantic Settings."""

from beartype import beartype
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ROUNDING_MODES = "^(none|up|down|nearest|bankers|truncate)$"


class Settings(BaseSettings):
    """Application settings with immutable configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATEBOOK_",
        env_file=None,
        env_file_encoding="utf-8",
        frozen=True,  # Immutable settings
        validate_default=True,
        extra="forbid",
    )

    # API Configuration
    app_name: str = Field(
        default="Ratebook",
        description="Application name",
        min_length=1,
    )
    api_env: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="API environment",
    )
    api_host: str = Field(default="0.0.0.0", description="Bind address of the API server")
    api_port: int = Field(default=8000, ge=1, le=65535, description="Port of the API server")
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level",
    )

    # Change set governance
    required_approval_roles: list[str] = Field(
        default_factory=lambda: ["product_manager", "compliance"],
        min_length=1,
        description="Minimum set of distinct roles that must approve a change set",
    )
    approval_roles_by_entity_type: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Extra approving roles required when a change set touches an entity type",
    )
    max_publish_items: int = Field(
        default=450,
        ge=1,
        le=10000,
        description="Maximum number of items a single publish may promote",
    )
    max_reported_missing_cells: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Cap on missing table combinations listed per preflight issue",
    )

    # Rating
    final_rounding_mode: str = Field(
        default="nearest",
        pattern=_ROUNDING_MODES,
        description="Rounding mode applied to the final premium",
    )
    final_rounding_precision: int = Field(
        default=0,
        ge=0,
        le=6,
        description="Decimal places kept on the final premium",
    )

    @field_validator("required_approval_roles")
    @classmethod
    def validate_distinct_roles(cls: type["Settings"], v: list[str]) -> list[str]:
        """Ensure required approval roles are distinct and non-blank."""
        cleaned = [role.strip() for role in v]
        if any(not role for role in cleaned):
            raise ValueError("Approval roles must be non-empty strings")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError(f"Approval roles must be distinct, got {v}")
        return cleaned

    @property
    @beartype
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.api_env == "production"


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
