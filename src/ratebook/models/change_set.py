# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Change set domain models.

A change set batches references to draft entity versions and carries them
through review, approval and publish. It never embeds payload copies.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import Field, field_validator

from .base import BaseModelConfig, ensure_utc
from .versioning import EntityType


class ChangeSetStatus(str, Enum):
    """Change set lifecycle states."""

    DRAFT = "draft"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


ALLOWED_CHANGE_SET_TRANSITIONS: dict[ChangeSetStatus, frozenset[ChangeSetStatus]] = {
    ChangeSetStatus.DRAFT: frozenset({ChangeSetStatus.IN_REVIEW}),
    ChangeSetStatus.IN_REVIEW: frozenset(
        {ChangeSetStatus.APPROVED, ChangeSetStatus.DRAFT, ChangeSetStatus.REJECTED}
    ),
    ChangeSetStatus.APPROVED: frozenset({ChangeSetStatus.PUBLISHED}),
    ChangeSetStatus.REJECTED: frozenset(),
    ChangeSetStatus.PUBLISHED: frozenset(),
}


class ItemAction(str, Enum):
    """What publishing an item does to its entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ApprovalStatus(str, Enum):
    """Decision state of one required approving role."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@beartype
class ChangeSetItem(BaseModelConfig):
    """Reference to the entity version a change set proposes."""

    item_id: str = Field(..., min_length=1)
    action: ItemAction = Field(...)
    entity_type: EntityType = Field(...)
    entity_id: str = Field(..., min_length=1)
    target_version_id: str = Field(..., min_length=1)


@beartype
class Approval(BaseModelConfig):
    """Approval record for one required role."""

    role: str = Field(..., min_length=1, max_length=100)
    status: ApprovalStatus = Field(default=ApprovalStatus.PENDING)
    actor: str | None = Field(default=None)
    decided_at: datetime | None = Field(default=None)
    notes: str | None = Field(default=None, max_length=2000)


@beartype
class AuditEntry(BaseModelConfig):
    """Entry of the change set audit timeline."""

    action: str = Field(..., min_length=1, max_length=100)
    actor: str = Field(..., min_length=1)
    at: datetime = Field(...)
    notes: str | None = Field(default=None, max_length=2000)
    metadata: dict[str, Any] = Field(default_factory=dict)


@beartype
class ChangeSet(BaseModelConfig):
    """Batch of proposed entity-version changes."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    status: ChangeSetStatus = Field(default=ChangeSetStatus.DRAFT)
    items: list[ChangeSetItem] = Field(default_factory=list)
    required_roles: list[str] = Field(default_factory=list)
    approvals: list[Approval] = Field(default_factory=list)
    history: list[AuditEntry] = Field(default_factory=list)
    target_effective_start: datetime | None = Field(default=None)
    cloned_from: str | None = Field(default=None)

    created_at: datetime = Field(...)
    created_by: str = Field(..., min_length=1)
    updated_at: datetime = Field(...)
    updated_by: str = Field(..., min_length=1)

    revision: int = Field(default=1, ge=1, description="Optimistic concurrency etag")

    @field_validator("target_effective_start")
    @classmethod
    def normalize_target(cls, v: datetime | None) -> datetime | None:
        """Treat a naive target date as UTC."""
        return None if v is None else ensure_utc(v)

    @property
    def pending_roles(self) -> list[str]:
        """Required roles that have not decided yet."""
        return [a.role for a in self.approvals if a.status == ApprovalStatus.PENDING]

    def item_for_entity(self, entity_type: EntityType, entity_id: str) -> ChangeSetItem | None:
        """Find the item referencing an entity, if any."""
        for item in self.items:
            if item.entity_type == entity_type and item.entity_id == entity_id:
                return item
        return None


@beartype
class PublishOutcome(BaseModelConfig):
    """Result of a publish call, also returned by idempotent retries."""

    change_set_id: str
    published_version_ids: list[str] = Field(default_factory=list)
    superseded_version_ids: list[str] = Field(default_factory=list)
    archived_version_ids: list[str] = Field(default_factory=list)
    already_published: bool = False

    revision: int = Field(default=1, ge=1)
