"""
Money Helpers

Monetary values are plain Decimal (single currency). Rounding to cents uses
ROUND_HALF_UP and is applied only when a value is stored or returned, never
to intermediate results.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any, Iterable

from .errors import ValidationError

# High precision for intermediate calculations
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Convert user input to Decimal, raising ValidationError for non-numeric input"""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero"""
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the context precision can hold at cent scale
        raise ValidationError(f"Amount {value} is out of range")


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum Decimal values starting from an exact zero"""
    total = ZERO
    for value in values:
        total += value
    return total
