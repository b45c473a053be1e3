# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Versioned configuration entity models.

A versioned entity is an append-only list of immutable snapshots. Only the
``draft`` snapshot may change payload; every other change is a lifecycle
transition recorded as a new model instance.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import Field, field_validator, model_validator

from .base import BaseModelConfig, ensure_utc


class EntityType(str, Enum):
    """Kinds of versioned configuration entities."""

    PRODUCT = "product"
    COVERAGE = "coverage"
    FORM = "form"
    RULE = "rule"
    RATE_PROGRAM = "rate_program"
    TABLE = "table"


class VersionStatus(str, Enum):
    """Lifecycle states of an entity version."""

    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# Edges a caller may request explicitly. Archiving only happens when a
# publish supersedes an older version.
ALLOWED_VERSION_TRANSITIONS: dict[VersionStatus, frozenset[VersionStatus]] = {
    VersionStatus.DRAFT: frozenset({VersionStatus.REVIEW}),
    VersionStatus.REVIEW: frozenset({VersionStatus.APPROVED, VersionStatus.DRAFT}),
    VersionStatus.APPROVED: frozenset({VersionStatus.PUBLISHED, VersionStatus.DRAFT}),
    VersionStatus.PUBLISHED: frozenset(),
    VersionStatus.ARCHIVED: frozenset(),
}

PUBLISHABLE_STATUSES: frozenset[VersionStatus] = frozenset(
    {VersionStatus.APPROVED, VersionStatus.PUBLISHED}
)


def can_transition(current: VersionStatus, target: VersionStatus) -> bool:
    """Check if a requested version status transition is allowed."""
    return target in ALLOWED_VERSION_TRANSITIONS.get(current, frozenset())


@beartype
class VersionedEntity(BaseModelConfig):
    """Immutable snapshot of one entity version."""

    entity_type: EntityType = Field(..., description="Kind of entity")
    entity_id: str = Field(..., min_length=1, max_length=200)
    version_id: str = Field(..., min_length=1, max_length=200)
    version_number: int = Field(..., ge=1, description="Per-entity sequence number")
    status: VersionStatus = Field(default=VersionStatus.DRAFT)
    effective_start: datetime | None = Field(default=None)
    effective_end: datetime | None = Field(default=None)
    payload: dict[str, Any] = Field(default_factory=dict)

    summary: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=2000)
    cloned_from: str | None = Field(default=None, description="Source version id")
    retired: bool = Field(
        default=False, description="Published as the tombstone of a delete"
    )

    # Audit fields
    created_at: datetime = Field(...)
    created_by: str = Field(..., min_length=1)
    updated_at: datetime = Field(...)
    updated_by: str = Field(..., min_length=1)
    published_at: datetime | None = Field(default=None)
    published_by: str | None = Field(default=None)

    revision: int = Field(default=1, ge=1, description="Optimistic concurrency etag")

    @field_validator("effective_start", "effective_end")
    @classmethod
    def normalize_window(cls, v: datetime | None) -> datetime | None:
        """Treat naive window bounds as UTC."""
        return None if v is None else ensure_utc(v)

    @model_validator(mode="after")
    def validate_window(self) -> "VersionedEntity":
        """Ensure the effective window is not inverted."""
        if (
            self.effective_start is not None
            and self.effective_end is not None
            and self.effective_end < self.effective_start
        ):
            raise ValueError("effective_end must not precede effective_start")
        return self

    @property
    def is_editable(self) -> bool:
        """Only draft versions accept payload edits."""
        return self.status == VersionStatus.DRAFT

    def is_effective_at(self, instant: datetime) -> bool:
        """Check whether the effective window contains ``instant``."""
        if self.effective_start is None or instant < self.effective_start:
            return False
        return self.effective_end is None or instant < self.effective_end


@beartype
class FieldChange(BaseModelConfig):
    """One structural difference between two payloads."""

    path: str = Field(..., description="Dotted path, list indices in brackets")
    change: str = Field(..., pattern="^(added|removed|changed)$")
    left: Any = Field(default=None)
    right: Any = Field(default=None)


@beartype
class VersionMetadata(BaseModelConfig):
    """Metadata half of a version comparison."""

    version_id: str
    version_number: int
    status: VersionStatus
    summary: str | None = None
    effective_start: datetime | None = None
    effective_end: datetime | None = None
    created_at: datetime
    created_by: str


@beartype
class VersionDiff(BaseModelConfig):
    """Field-level comparison of two versions."""

    entity_type: EntityType
    entity_id: str
    left: VersionMetadata
    right: VersionMetadata
    changes: list[FieldChange] = Field(default_factory=list)

    @property
    def is_identical(self) -> bool:
        """True when the payloads are structurally equal."""
        return not self.changes


@beartype
class EntityHistory(BaseModelConfig):
    """Append-only list of the version ids of one entity, oldest first."""

    entity_type: EntityType
    entity_id: str = Field(..., min_length=1, max_length=200)
    version_ids: list[str] = Field(default_factory=list)

    revision: int = Field(default=1, ge=1, description="Optimistic concurrency etag")

    @staticmethod
    def key_for(entity_type: EntityType, entity_id: str) -> str:
        """Store key of an entity's history."""
        return f"{entity_type.value}:{entity_id}"
