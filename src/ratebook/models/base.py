# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Base Pydantic model configuration for all domain models.

This module provides the foundation for all domain models in the system,
enforcing immutability and strict validation.
"""

from datetime import datetime, timezone

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field, field_validator


@beartype
class BaseModelConfig(BaseModel):
    """Base model with strict configuration for all domain entities.

    Enforces:
    - Immutability (frozen=True)
    - No extra fields allowed (extra="forbid")
    - Validation on assignment
    - Automatic whitespace stripping
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
class OpenPayloadModel(BaseModel):
    """Base for externally owned payload schemas.

    Only the fields the core inspects are declared; everything else is kept
    untouched so editing surfaces own the rest of the document.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
class AuditContext(BaseModelConfig):
    """Acting user and clock reading passed into every mutating operation."""

    actor: str = Field(..., min_length=1, max_length=200, description="Acting user")
    now: datetime = Field(..., description="Timestamp of the operation")

    @field_validator("now")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        return ensure_utc(v)

    @classmethod
    def for_actor(cls, actor: str) -> "AuditContext":
        """Build a context stamped with the current UTC time."""
        return cls(actor=actor, now=datetime.now(timezone.utc))


def ensure_utc(value: datetime) -> datetime:
    """Treat a naive timestamp as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
