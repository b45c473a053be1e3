# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Rating step, rating table and evaluation models.

Step kinds and dimension kinds are tagged unions: an unknown ``step_type``,
``operand`` or ``kind`` tag fails validation when the record enters the
system, never in the middle of an evaluation.
"""

import re
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Literal

from beartype import beartype
from pydantic import Field, field_validator, model_validator

from .base import BaseModelConfig

CELL_KEY_SEPARATOR = "|"

_LEGACY_ROUNDING_LABELS: dict[str, tuple[str, int]] = {
    "none": ("none", 0),
    "whole number": ("nearest", 0),
    "nearest dollar": ("nearest", 0),
    "1 decimal": ("nearest", 1),
    "2 decimals": ("nearest", 2),
    "3 decimals": ("nearest", 3),
    "4 decimals": ("nearest", 4),
}
_RANGE_LABEL = re.compile(r"^\s*(-?[\d,.]+)\s*-\s*(-?[\d,.]+)\s*$")
_OPEN_RANGE_LABEL = re.compile(r"^\s*(-?[\d,.]+)\s*\+\s*$")


class RoundingMode(str, Enum):
    """Rounding modes for resolved factor values and the final premium."""

    NONE = "none"
    UP = "up"
    DOWN = "down"
    NEAREST = "nearest"
    BANKERS = "bankers"
    TRUNCATE = "truncate"


class Operand(str, Enum):
    """Combinators accepted by operand steps."""

    MULTIPLY = "*"
    ADD = "+"
    SUBTRACT = "-"
    DIVIDE = "/"
    SUBTOTAL = "="


@beartype
class RoundingRule(BaseModelConfig):
    """Rounding applied to a value, e.g. nearest with precision 2."""

    mode: RoundingMode = Field(default=RoundingMode.NONE)
    precision: int = Field(default=0, ge=0, le=10, description="Decimal places")

    @model_validator(mode="before")
    @classmethod
    def parse_legacy_label(cls, data: Any) -> Any:
        """Accept labels such as ``"2 Decimals"`` or ``"Whole Number"``."""
        if isinstance(data, str):
            label = data.strip().lower()
            if label in _LEGACY_ROUNDING_LABELS:
                mode, precision = _LEGACY_ROUNDING_LABELS[label]
                return {"mode": mode, "precision": precision}
            return {"mode": label}
        return data


class _StepBase(BaseModelConfig):
    order: int = Field(..., ge=0, description="Position in the evaluation sequence")
    name: str = Field(default="", max_length=200)
    coverage_scope: list[str] = Field(
        default_factory=list, description="Coverages the step applies to; empty = all"
    )
    state_scope: list[str] = Field(
        default_factory=list, description="States the step applies to; empty = all"
    )

    @field_validator("state_scope")
    @classmethod
    def normalize_states(cls, v: list[str]) -> list[str]:
        """Store state codes upper-cased."""
        return [state.strip().upper() for state in v]


@beartype
class FactorStep(_StepBase):
    """Step producing a number from a literal, an input field or a table."""

    step_type: Literal["factor"] = "factor"
    value: Decimal | None = Field(default=None, description="Literal factor value")
    input_field: str | None = Field(
        default=None, description="Risk attribute supplying the factor value"
    )
    table: str | None = Field(default=None, description="Rating table entity id")
    lookup_dimensions: dict[str, str] = Field(
        default_factory=dict,
        description="Dimension name -> risk attribute overriding the dimension field",
    )
    rounding: RoundingRule = Field(default_factory=RoundingRule)

    @field_validator("rounding", mode="before")
    @classmethod
    def default_rounding(cls, v: Any) -> Any:
        """A null rounding means no rounding."""
        return {"mode": RoundingMode.NONE} if v is None else v

    @model_validator(mode="after")
    def validate_single_source(self) -> "FactorStep":
        """A factor has exactly one value source."""
        sources = [
            name
            for name, present in (
                ("value", self.value is not None),
                ("input_field", bool(self.input_field)),
                ("table", bool(self.table)),
            )
            if present
        ]
        if len(sources) != 1:
            raise ValueError(
                f"Factor step {self.order} needs exactly one of value, input_field "
                f"or table; got {sources or 'none'}"
            )
        return self


@beartype
class OperandStep(_StepBase):
    """Step combining the running value with the next factor."""

    step_type: Literal["operand"] = "operand"
    operand: Operand = Field(...)


RatingStep = Annotated[FactorStep | OperandStep, Field(discriminator="step_type")]


class StepSequenceError(ValueError):
    """Step list violating the factor/operand grammar."""

    def __init__(self, message: str, order: int | None = None) -> None:
        """Initialize with the order of the offending step, if any."""
        super().__init__(message)
        self.order = order


def order_steps(steps: Sequence[FactorStep | OperandStep]) -> list[FactorStep | OperandStep]:
    """Check the step grammar and return the steps in evaluation order.

    The sequence must be non-empty, use consecutive ``order`` values, start
    with a factor and alternate factor/operand. Only a ``=`` operand may end
    the sequence.

    Raises:
        StepSequenceError: First grammar violation found
    """
    if not steps:
        raise StepSequenceError("Rating sequence has no steps")

    ordered = sorted(steps, key=lambda step: step.order)
    first_order = ordered[0].order
    for position, step in enumerate(ordered):
        expected = first_order + position
        if step.order != expected:
            raise StepSequenceError(
                f"Step orders must be unique and gapless; expected {expected}, got {step.order}",
                step.order,
            )

        expects_factor = position % 2 == 0
        if expects_factor and not isinstance(step, FactorStep):
            if position == 0:
                raise StepSequenceError("Rating sequence must start with a factor", step.order)
            raise StepSequenceError(
                f"Step {step.order} is an operand following another operand", step.order
            )
        if not expects_factor and not isinstance(step, OperandStep):
            raise StepSequenceError(
                f"Step {step.order} is a factor following another factor without an operand",
                step.order,
            )

    last = ordered[-1]
    if isinstance(last, OperandStep) and last.operand != Operand.SUBTOTAL:
        raise StepSequenceError(
            f"Operand {last.operand.value} at step {last.order} has no following factor",
            last.order,
        )
    return ordered


class _DimensionBase(BaseModelConfig):
    name: str = Field(..., min_length=1, max_length=100)
    field: str = Field(
        default="",
        description="Context attribute read for this dimension; defaults to the name",
    )
    values: list[str] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def default_field(cls, data: Any) -> Any:
        """Read the attribute named like the dimension unless told otherwise."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("field"):
            data["field"] = data.get("name", "")
        if isinstance(data.get("values"), list):
            data["values"] = [str(value) for value in data["values"]]
        return data

    @field_validator("values")
    @classmethod
    def validate_unique_values(cls, v: list[str]) -> list[str]:
        """Dimension values must be distinct and separator-free."""
        if len(set(v)) != len(v):
            raise ValueError(f"Dimension values must be unique: {v}")
        for value in v:
            if CELL_KEY_SEPARATOR in value:
                raise ValueError(
                    f"Dimension value {value!r} contains reserved '{CELL_KEY_SEPARATOR}'"
                )
        return v


@beartype
class DiscreteDimension(_DimensionBase):
    """Dimension matched by exact value."""

    kind: Literal["discrete"] = "discrete"


@beartype
class RangeBucket(BaseModelConfig):
    """Numeric bucket of a range dimension."""

    label: str = Field(..., min_length=1)
    min: Decimal | None = Field(default=None, description="Lower bound, None = open")
    max: Decimal | None = Field(default=None, description="Upper bound, None = open")
    inclusive: Literal["both", "min", "max", "neither"] = "both"

    def contains(self, number: Decimal) -> bool:
        """Check bucket membership."""
        if self.min is not None:
            if number < self.min:
                return False
            if number == self.min and self.inclusive not in ("both", "min"):
                return False
        if self.max is not None:
            if number > self.max:
                return False
            if number == self.max and self.inclusive not in ("both", "max"):
                return False
        return True


@beartype
class RangeDimension(_DimensionBase):
    """Dimension matched by numeric bucket membership."""

    kind: Literal["range"] = "range"
    ranges: list[RangeBucket] = Field(
        default_factory=list,
        description="Explicit buckets; parsed from the value labels when empty",
    )

    @model_validator(mode="before")
    @classmethod
    def build_buckets(cls, data: Any) -> Any:
        """Derive buckets from the value labels when none are declared."""
        if isinstance(data, dict) and not data.get("ranges"):
            values = data.get("values") or []
            return {**data, "ranges": [parse_range_label(str(v)) for v in values]}
        return data

    @model_validator(mode="after")
    def validate_buckets(self) -> "RangeDimension":
        """Buckets must match the value labels and must not overlap."""
        labels = [bucket.label for bucket in self.ranges]
        if sorted(labels) != sorted(self.values):
            raise ValueError(
                f"Range buckets {labels} do not match dimension values {self.values}"
            )
        ordered = sorted(
            self.ranges,
            key=lambda b: b.min if b.min is not None else Decimal("-Infinity"),
        )
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.max is None or (upper.min is not None and upper.min < lower.max):
                raise ValueError(f"Range buckets {lower.label} and {upper.label} overlap")
            if (
                upper.min == lower.max
                and lower.inclusive in ("both", "max")
                and upper.inclusive in ("both", "min")
            ):
                raise ValueError(
                    f"Range buckets {lower.label} and {upper.label} share a boundary"
                )
        return self


TableDimension = Annotated[
    DiscreteDimension | RangeDimension, Field(discriminator="kind")
]


@beartype
class RatingTable(BaseModelConfig):
    """Multi-dimensional sparse factor table."""

    name: str = Field(..., min_length=1, max_length=200)
    dimensions: list[TableDimension] = Field(..., min_length=1)
    cells: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Dimension values joined with '|' in declared order -> factor",
    )

    @model_validator(mode="after")
    def validate_cell_keys(self) -> "RatingTable":
        """Every cell key must name declared values of every dimension."""
        names = [dimension.name for dimension in self.dimensions]
        if len(set(names)) != len(names):
            raise ValueError(f"Table {self.name} has duplicate dimension names")
        for key in self.cells:
            parts = key.split(CELL_KEY_SEPARATOR)
            if len(parts) != len(self.dimensions):
                raise ValueError(
                    f"Cell key {key!r} has {len(parts)} parts, table {self.name} "
                    f"has {len(self.dimensions)} dimensions"
                )
            for part, dimension in zip(parts, self.dimensions):
                if part not in dimension.values:
                    raise ValueError(
                        f"Cell key {key!r}: {part!r} is not a value of dimension "
                        f"{dimension.name}"
                    )
        return self

    @staticmethod
    def cell_key(parts: list[str]) -> str:
        """Join resolved dimension values into a cell key."""
        return CELL_KEY_SEPARATOR.join(parts)


@beartype
class RatingContext(BaseModelConfig):
    """Inputs for one rating evaluation."""

    state_code: str = Field(..., min_length=2, max_length=2)
    selected_coverages: list[str] = Field(default_factory=list)
    risk_attributes: dict[str, str | int | float | Decimal | bool | None] = Field(
        default_factory=dict
    )
    tables: dict[str, RatingTable] = Field(
        default_factory=dict, description="Table entity id -> already-fetched table"
    )

    @field_validator("state_code")
    @classmethod
    def normalize_state(cls, v: str) -> str:
        """Store the state code upper-cased."""
        return v.upper()


@beartype
class TraceEntry(BaseModelConfig):
    """Audit record of one evaluated step."""

    order: int
    name: str
    step_type: Literal["factor", "operand"]
    applied: bool
    skip_reason: str | None = None
    operand: Operand | None = None
    pre_rounding_value: Decimal | None = None
    resolved_value: Decimal | None = None
    table_lookup_key: str | None = None
    running_total: Decimal | None = None


@beartype
class RatingResult(BaseModelConfig):
    """Premium plus everything needed to audit how it was produced."""

    premium: Decimal
    unrounded_premium: Decimal
    subtotals: list[Decimal] = Field(default_factory=list)
    trace: list[TraceEntry] = Field(default_factory=list)
    result_hash: str = Field(..., min_length=64, max_length=64)


def parse_range_label(label: str) -> RangeBucket:
    """Parse ``"25001-50000"`` or ``"50001+"`` into a bucket."""
    match = _RANGE_LABEL.match(label)
    if match:
        low, high = (_to_decimal(group, label) for group in match.groups())
        if high < low:
            raise ValueError(f"Range label {label!r} has max below min")
        return RangeBucket(label=label, min=low, max=high)
    match = _OPEN_RANGE_LABEL.match(label)
    if match:
        return RangeBucket(label=label, min=_to_decimal(match.group(1), label))
    raise ValueError(
        f"Range label {label!r} must look like 'min-max' or 'min+', "
        "or declare explicit ranges"
    )


def _to_decimal(text: str, label: str) -> Decimal:
    try:
        return Decimal(text.replace(",", ""))
    except InvalidOperation as exc:
        raise ValueError(f"Range label {label!r} has a non-numeric bound") from exc
