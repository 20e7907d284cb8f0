"""
Money helpers for the ledger.

Every amount and quantity is a Decimal. Floats never enter the ledger:
values coming from JSON or callers are converted through ``to_money``,
which goes via ``str`` so that 0.1 stays 0.1.

Amounts are kept unrounded while they accumulate. ``round_money`` is for
presentation and report persistence only.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Tolerance for comparing balances that went through tax multiplication.
EPSILON = Decimal("0.01")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """
    Convert a value to Decimal.

    None becomes zero. Floats are converted via their string form.

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a finite monetary value: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to whole cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal]) -> Decimal:
    """Unrounded sum of amounts. Empty input sums to zero."""
    return sum(values, ZERO)


def non_negative(value: Decimal) -> Decimal:
    """Clamp NaN and negative results to zero."""
    if value.is_nan() or value < ZERO:
        return ZERO
    return value


def is_settled(balance_due: Decimal, epsilon: Decimal = EPSILON) -> bool:
    """Whether a remaining balance is within tolerance of zero."""
    return balance_due <= epsilon
