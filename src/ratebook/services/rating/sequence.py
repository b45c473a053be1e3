"""Structural validation of rating step sequences."""

from collections.abc import Sequence

from beartype import beartype

from ...core.errors import ValidationError
from ...models.rating import FactorStep, OperandStep, StepSequenceError, order_steps

MALFORMED_SEQUENCE = "malformed-sequence"


@beartype
def validate_sequence(steps: Sequence[FactorStep | OperandStep]) -> list[FactorStep | OperandStep]:
    """Check the step grammar and return the steps in evaluation order.

    Raises:
        ValidationError: With code ``malformed-sequence``.
    """
    try:
        return order_steps(steps)
    except StepSequenceError as exc:
        context = {} if exc.order is None else {"order": exc.order}
        raise ValidationError(MALFORMED_SEQUENCE, str(exc), context) from exc
