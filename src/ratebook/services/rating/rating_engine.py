# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Rating engine evaluating factor/operand step sequences into a premium.

The sequence reads like a formula: a factor seeds the running value, each
operand (``*``, ``+``, ``-``, ``/``) combines the running value with the next
factor, and ``=`` commits the running value as a sub-total so another
coverage's chain can start. The premium is the sum of sub-totals plus the open
chain, after the final rounding rule.

Factors outside the evaluation's state or coverage scope are passed through
together with the operand that connects them, so the remaining chain stays
well formed.

Evaluation is pure: no I/O, no shared state, no writes.
"""

import hashlib
import json
from collections.abc import Sequence
from decimal import Decimal, DivisionByZero, InvalidOperation
from typing import Any

from beartype import beartype

from ...core.config import get_settings
from ...core.errors import NotFoundError, ValidationError
from ...core.logging_utils import get_logger
from ...models.rating import (
    FactorStep,
    Operand,
    OperandStep,
    RatingContext,
    RatingResult,
    RoundingRule,
    TraceEntry,
)
from .rounding import apply_rounding
from .sequence import MALFORMED_SEQUENCE, validate_sequence
from .table_resolver import TableResolver, coerce_decimal

logger = get_logger(__name__)

STATE_CODE_FIELD = "stateCode"

SKIP_STATE_SCOPE = "out-of-state-scope"
SKIP_COVERAGE_SCOPE = "out-of-coverage-scope"
SKIP_CONNECTS_SKIPPED_FACTOR = "connects-skipped-factor"


class RatingEngine:
    """Deterministic evaluator for rating step sequences."""

    def __init__(
        self,
        resolver: TableResolver | None = None,
        final_rounding: RoundingRule | None = None,
    ) -> None:
        """Initialize rating engine.

        Args:
            resolver: Table resolver for table-backed factors
            final_rounding: Default rounding of the premium; taken from
                settings when omitted
        """
        self._resolver = resolver or TableResolver()
        if final_rounding is None:
            settings = get_settings()
            final_rounding = RoundingRule(
                mode=settings.final_rounding_mode,
                precision=settings.final_rounding_precision,
            )
        self._final_rounding = final_rounding

    @beartype
    def rate(
        self,
        steps: Sequence[FactorStep | OperandStep],
        context: RatingContext,
        *,
        final_rounding: RoundingRule | None = None,
    ) -> RatingResult:
        """Evaluate ``steps`` against ``context``.

        Args:
            steps: Rating steps of one rate program version
            context: State, selected coverages, risk attributes and tables
            final_rounding: Overrides the engine's premium rounding

        Returns:
            Premium, sub-totals, step trace and a determinism hash

        Raises:
            ValidationError: Malformed sequence, missing input or dimension
                value, non-numeric input, or division by zero
            NotFoundError: Unknown table or missing table entry
        """
        ordered = validate_sequence(steps)
        rounding = final_rounding or self._final_rounding

        total = Decimal("0")
        accumulator: Decimal | None = None
        pending: Operand | None = None
        drop_next_operand = False
        subtotals: list[Decimal] = []
        trace: list[TraceEntry] = []

        for step in ordered:
            if isinstance(step, FactorStep):
                skip_reason = self._skip_reason(step, context)
                if skip_reason is not None:
                    if pending is not None:
                        pending = None
                    else:
                        drop_next_operand = True
                    trace.append(self._skipped(step, skip_reason, accumulator))
                    continue

                pre_rounding, lookup_key = self._resolve_factor(step, context)
                value = apply_rounding(pre_rounding, step.rounding)
                if accumulator is None:
                    accumulator = value
                else:
                    accumulator = self._combine(accumulator, pending, value, step)
                pending = None
                trace.append(
                    TraceEntry(
                        order=step.order,
                        name=step.name,
                        step_type="factor",
                        applied=True,
                        pre_rounding_value=pre_rounding,
                        resolved_value=value,
                        table_lookup_key=lookup_key,
                        running_total=accumulator,
                    )
                )
                continue

            if drop_next_operand:
                drop_next_operand = False
                trace.append(self._skipped(step, SKIP_CONNECTS_SKIPPED_FACTOR, accumulator))
                continue

            if step.operand == Operand.SUBTOTAL:
                if accumulator is not None:
                    total += accumulator
                    subtotals.append(accumulator)
                accumulator = None
                pending = None
                running: Decimal | None = total
            else:
                pending = step.operand
                running = accumulator
            trace.append(
                TraceEntry(
                    order=step.order,
                    name=step.name,
                    step_type="operand",
                    applied=True,
                    operand=step.operand,
                    running_total=running,
                )
            )

        unrounded = total + (accumulator if accumulator is not None else Decimal("0"))
        premium = apply_rounding(unrounded, rounding)
        result_hash = self._result_hash(ordered, context, rounding, premium, subtotals, trace)

        logger.debug(
            "Rated %d steps for %s: premium=%s hash=%s",
            len(ordered),
            context.state_code,
            premium,
            result_hash[:12],
        )
        return RatingResult(
            premium=premium,
            unrounded_premium=unrounded,
            subtotals=subtotals,
            trace=trace,
            result_hash=result_hash,
        )

    def _skip_reason(self, step: FactorStep, context: RatingContext) -> str | None:
        if step.state_scope and context.state_code not in step.state_scope:
            return SKIP_STATE_SCOPE
        if step.coverage_scope and not set(step.coverage_scope) & set(
            context.selected_coverages
        ):
            return SKIP_COVERAGE_SCOPE
        return None

    def _resolve_factor(
        self, step: FactorStep, context: RatingContext
    ) -> tuple[Decimal, str | None]:
        if step.value is not None:
            return step.value, None

        if step.input_field:
            raw = context.risk_attributes.get(step.input_field)
            if raw is None:
                raise ValidationError(
                    "missing-input",
                    f"Step {step.order} reads {step.input_field}, which the context lacks",
                    {"order": step.order, "input_field": step.input_field},
                )
            number = coerce_decimal(raw)
            if number is None:
                raise ValidationError(
                    "non-numeric-input",
                    f"Step {step.order} input {step.input_field}={raw!r} is not a number",
                    {"order": step.order, "input_field": step.input_field},
                )
            return number, None

        table_id = step.table or ""
        table = context.tables.get(table_id)
        if table is None:
            raise NotFoundError(
                "unknown-table",
                f"Step {step.order} references table {table_id}, which is not loaded",
                {"order": step.order, "table": table_id},
            )
        dimension_values = {
            dimension.name: self._dimension_value(step, dimension.name, dimension.field, context)
            for dimension in table.dimensions
        }
        lookup = self._resolver.resolve(table, dimension_values)
        return lookup.value, lookup.key

    @staticmethod
    def _dimension_value(
        step: FactorStep, name: str, default_field: str, context: RatingContext
    ) -> Any:
        field = step.lookup_dimensions.get(name, default_field)
        if field == STATE_CODE_FIELD:
            return context.state_code
        return context.risk_attributes.get(field)

    @staticmethod
    def _combine(
        accumulator: Decimal,
        operand: Operand | None,
        value: Decimal,
        step: FactorStep,
    ) -> Decimal:
        if operand is None:
            raise ValidationError(
                MALFORMED_SEQUENCE,
                f"Factor {step.order} has no operand connecting it to the running value",
                {"order": step.order},
            )
        if operand == Operand.MULTIPLY:
            return accumulator * value
        if operand == Operand.ADD:
            return accumulator + value
        if operand == Operand.SUBTRACT:
            return accumulator - value
        if operand == Operand.DIVIDE:
            if value == 0:
                raise ValidationError(
                    "division-by-zero",
                    f"Factor {step.order} resolved to zero as a divisor",
                    {"order": step.order},
                )
            try:
                return accumulator / value
            except (DivisionByZero, InvalidOperation) as exc:
                raise ValidationError(
                    "division-by-zero", str(exc), {"order": step.order}
                ) from exc
        raise ValidationError(
            MALFORMED_SEQUENCE,
            f"Operand {operand.value} cannot combine factor {step.order}",
            {"order": step.order},
        )

    @staticmethod
    def _skipped(
        step: FactorStep | OperandStep, reason: str, accumulator: Decimal | None
    ) -> TraceEntry:
        return TraceEntry(
            order=step.order,
            name=step.name,
            step_type=step.step_type,
            applied=False,
            skip_reason=reason,
            operand=step.operand if isinstance(step, OperandStep) else None,
            running_total=accumulator,
        )

    @staticmethod
    def _result_hash(
        ordered: list[FactorStep | OperandStep],
        context: RatingContext,
        rounding: RoundingRule,
        premium: Decimal,
        subtotals: list[Decimal],
        trace: list[TraceEntry],
    ) -> str:
        canonical = {
            "steps": [step.model_dump(mode="json") for step in ordered],
            "context": context.model_dump(mode="json"),
            "final_rounding": rounding.model_dump(mode="json"),
            "premium": str(premium),
            "subtotals": [str(subtotal) for subtotal in subtotals],
            "trace": [entry.model_dump(mode="json") for entry in trace],
        }
        encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
