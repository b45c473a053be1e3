"""Domain models package for Ratebook.

This package exports the immutable Pydantic models for versioned entities,
change sets, preflight reports and rating.
"""

from .base import AuditContext, BaseModelConfig, OpenPayloadModel
from .change_set import (
    Approval,
    ApprovalStatus,
    AuditEntry,
    ChangeSet,
    ChangeSetItem,
    ChangeSetStatus,
    ItemAction,
    PublishOutcome,
)
from .payloads import (
    CoverageCategory,
    CoveragePayload,
    FormPayload,
    ProductPayload,
    RateProgramPayload,
    RulePayload,
    StateProgram,
    StateProgramStatus,
    TablePayload,
)
from .preflight import IssueSeverity, PreflightIssue, PreflightReport
from .rating import (
    DiscreteDimension,
    FactorStep,
    Operand,
    OperandStep,
    RangeBucket,
    RangeDimension,
    RatingContext,
    RatingResult,
    RatingStep,
    RatingTable,
    RoundingMode,
    RoundingRule,
    TraceEntry,
)
from .versioning import (
    EntityHistory,
    EntityType,
    FieldChange,
    VersionDiff,
    VersionedEntity,
    VersionMetadata,
    VersionStatus,
)

__all__ = [
    # Base models
    "BaseModelConfig",
    "OpenPayloadModel",
    "AuditContext",
    # Versioning
    "EntityType",
    "VersionStatus",
    "VersionedEntity",
    "EntityHistory",
    "FieldChange",
    "VersionMetadata",
    "VersionDiff",
    # Change sets
    "ChangeSet",
    "ChangeSetItem",
    "ChangeSetStatus",
    "ItemAction",
    "Approval",
    "ApprovalStatus",
    "AuditEntry",
    "PublishOutcome",
    # Preflight
    "IssueSeverity",
    "PreflightIssue",
    "PreflightReport",
    # Payloads
    "CoverageCategory",
    "CoveragePayload",
    "FormPayload",
    "ProductPayload",
    "RateProgramPayload",
    "RulePayload",
    "StateProgram",
    "StateProgramStatus",
    "TablePayload",
    # Rating
    "RoundingMode",
    "RoundingRule",
    "Operand",
    "FactorStep",
    "OperandStep",
    "RatingStep",
    "DiscreteDimension",
    "RangeBucket",
    "RangeDimension",
    "RatingTable",
    "RatingContext",
    "TraceEntry",
    "RatingResult",
]
