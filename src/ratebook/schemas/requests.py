"""Request bodies of the v1 API."""

from datetime import datetime
from typing import Any

from pydantic import Field

from ..models.base import BaseModelConfig
from ..models.change_set import ItemAction
from ..models.rating import RatingContext, RatingStep, RoundingRule
from ..models.versioning import VersionStatus


class VersionCreateRequest(BaseModelConfig):
    """Request model for creating a draft version."""

    payload: dict[str, Any] = Field(...)
    summary: str | None = Field(None, max_length=500)
    effective_start: datetime | None = Field(None)
    effective_end: datetime | None = Field(None)


class VersionUpdateRequest(BaseModelConfig):
    """Request model for replacing a draft payload."""

    payload: dict[str, Any] = Field(...)
    expected_revision: int | None = Field(None, ge=1)


class VersionCloneRequest(BaseModelConfig):
    """Request model for cloning a version into a new draft."""

    summary: str | None = Field(None, max_length=500)


class VersionTransitionRequest(BaseModelConfig):
    """Request model for a single version status transition."""

    status: VersionStatus = Field(...)
    notes: str | None = Field(None, max_length=2000)
    expected_revision: int | None = Field(None, ge=1)


class ChangeSetCreateRequest(BaseModelConfig):
    """Request model for opening a change set."""

    title: str = Field(..., min_length=1, max_length=200)
    target_effective_start: datetime | None = Field(None)


class ChangeSetItemRequest(BaseModelConfig):
    """Request model for adding an item to a change set."""

    action: ItemAction = Field(...)
    version_id: str = Field(..., min_length=1)


class ReturnToDraftRequest(BaseModelConfig):
    """Request model for returning a change set to its editor."""

    reason: str = Field(..., min_length=1, max_length=2000)


class ApprovalRequest(BaseModelConfig):
    """Request model for recording a role's approval."""

    role: str = Field(..., min_length=1, max_length=100)
    notes: str | None = Field(None, max_length=2000)


class RejectionRequest(BaseModelConfig):
    """Request model for rejecting a change set."""

    role: str = Field(..., min_length=1, max_length=100)
    notes: str = Field(..., min_length=1, max_length=2000)


class PublishRequest(BaseModelConfig):
    """Request model for publishing a change set."""

    jurisdictions: list[str] = Field(default_factory=list)


class RateRequest(BaseModelConfig):
    """Request model for rating an explicit step list."""

    steps: list[RatingStep] = Field(..., min_length=1)
    context: RatingContext = Field(...)
    final_rounding: RoundingRule | None = Field(None)


class PublishedRateRequest(BaseModelConfig):
    """Request model for rating with a published rate program."""

    context: RatingContext = Field(...)
    as_of: datetime | None = Field(None, description="Defaults to the request time")
