# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Entity payload schemas.

Payload content belongs to the editing surfaces; these models only pin down
the fields the core inspects (scopes, references, step and table structures)
and let every other key through untouched.
"""

from enum import Enum

from beartype import beartype
from pydantic import Field, field_validator, model_validator

from .base import BaseModelConfig, OpenPayloadModel
from .rating import RatingStep, RatingTable, RoundingRule, order_steps


class CoverageCategory(str, Enum):
    """Canonical coverage categories; optionality lives in ``is_optional``."""

    BASE = "base"
    ENDORSEMENT = "endorsement"


class StateProgramStatus(str, Enum):
    """Jurisdictional readiness of a product version."""

    DRAFT = "draft"
    FILED = "filed"
    APPROVED = "approved"
    ACTIVE = "active"
    NOT_OFFERED = "not_offered"


@beartype
class StateProgram(BaseModelConfig):
    """Filing and activation status of a product in one state."""

    state_code: str = Field(..., min_length=2, max_length=2)
    status: StateProgramStatus = Field(default=StateProgramStatus.DRAFT)
    required_artifact_version_ids: list[str] = Field(default_factory=list)

    @field_validator("state_code")
    @classmethod
    def normalize_state(cls, v: str) -> str:
        """Store the state code upper-cased."""
        return v.upper()


@beartype
class ProductPayload(OpenPayloadModel):
    """Product fields inspected by preflight."""

    name: str = Field(..., min_length=1, max_length=200)
    coverage_ids: list[str] = Field(default_factory=list)
    rate_program_ids: list[str] = Field(default_factory=list)
    state_programs: list[StateProgram] = Field(default_factory=list)

    @field_validator("state_programs")
    @classmethod
    def validate_unique_states(cls, v: list[StateProgram]) -> list[StateProgram]:
        """One state program per state."""
        codes = [program.state_code for program in v]
        duplicates = sorted({code for code in codes if codes.count(code) > 1})
        if duplicates:
            raise ValueError(f"Duplicate state programs for {duplicates}")
        return v


@beartype
class CoveragePayload(OpenPayloadModel):
    """Coverage fields inspected by the core."""

    name: str = Field(..., min_length=1, max_length=200)
    category: CoverageCategory = Field(default=CoverageCategory.BASE)
    is_optional: bool = Field(default=False)

    @field_validator("category", mode="before")
    @classmethod
    def reject_optional_category(cls, v: object) -> object:
        """``optional`` is not a category; use ``is_optional`` instead."""
        if isinstance(v, str) and v.strip().lower() == "optional":
            raise ValueError(
                "category 'optional' is not supported; use category 'base' or "
                "'endorsement' with is_optional=true"
            )
        return v


@beartype
class FormPayload(OpenPayloadModel):
    """Form fields inspected by preflight."""

    name: str = Field(..., min_length=1, max_length=200)
    coverage_ids: list[str] = Field(default_factory=list)


@beartype
class RulePayload(OpenPayloadModel):
    """Business rule fields inspected by preflight."""

    name: str = Field(..., min_length=1, max_length=200)
    coverage_ids: list[str] = Field(default_factory=list)
    target_version_ids: list[str] = Field(
        default_factory=list, description="Entity versions the rule acts on"
    )


@beartype
class RateProgramPayload(OpenPayloadModel):
    """Rate program: ordered rating steps plus final rounding."""

    name: str = Field(..., min_length=1, max_length=200)
    steps: list[RatingStep] = Field(..., min_length=1)
    final_rounding: RoundingRule | None = Field(
        default=None, description="Rounding of the premium; settings default when None"
    )

    @model_validator(mode="after")
    def validate_step_sequence(self) -> "RateProgramPayload":
        """Steps must form a well-formed factor/operand sequence."""
        order_steps(self.steps)
        return self


@beartype
class TablePayload(RatingTable):
    """Rating table version payload."""
