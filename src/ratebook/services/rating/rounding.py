"""Rounding of resolved factor values and final premiums."""

from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

from beartype import beartype

from ...models.rating import RoundingMode, RoundingRule

_DECIMAL_ROUNDING: dict[RoundingMode, str] = {
    RoundingMode.UP: ROUND_CEILING,
    RoundingMode.DOWN: ROUND_FLOOR,
    RoundingMode.NEAREST: ROUND_HALF_UP,
    RoundingMode.BANKERS: ROUND_HALF_EVEN,
    RoundingMode.TRUNCATE: ROUND_DOWN,
}


@beartype
def apply_rounding(value: Decimal, rule: RoundingRule) -> Decimal:
    """Round ``value`` to ``rule.precision`` places using ``rule.mode``.

    ``up`` and ``down`` round toward positive and negative infinity,
    ``truncate`` toward zero, ``nearest`` half away from zero and ``bankers``
    half to even.
    """
    if rule.mode == RoundingMode.NONE:
        return value
    exponent = Decimal(1).scaleb(-rule.precision)
    return value.quantize(exponent, rounding=_DECIMAL_ROUNDING[rule.mode])
