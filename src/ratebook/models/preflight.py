"""Publish preflight report models."""

from enum import Enum

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig
from .versioning import EntityType


class IssueSeverity(str, Enum):
    """Errors block publish, warnings are informational."""

    ERROR = "error"
    WARNING = "warning"


@beartype
class PreflightIssue(BaseModelConfig):
    """One correctable readiness problem."""

    code: str = Field(..., min_length=1, max_length=100)
    severity: IssueSeverity = Field(default=IssueSeverity.ERROR)
    message: str = Field(..., min_length=1)
    entity_type: EntityType | None = None
    entity_id: str | None = None
    version_id: str | None = None
    state_code: str | None = None


@beartype
class PreflightReport(BaseModelConfig):
    """Structured readiness report for a change set."""

    change_set_id: str
    jurisdictions: list[str] = Field(default_factory=list)
    issues: list[PreflightIssue] = Field(default_factory=list)
    item_count: int = Field(default=0, ge=0)
    approval_count: int = Field(default=0, ge=0)
    approved_count: int = Field(default=0, ge=0)

    @property
    def blocking_issues(self) -> list[PreflightIssue]:
        """Issues that prevent publish."""
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    @property
    def can_publish(self) -> bool:
        """True when no blocking issue remains."""
        return not self.blocking_issues
