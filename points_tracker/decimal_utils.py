"""
Exact base-10 helpers for point values.

Point values are summed across many tasks per day, so every calculation
goes through decimal.Decimal. Floats are only accepted at the boundary and
are converted through their string form (0.1 -> Decimal("0.1")).
"""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

from points_tracker.constants import POINTS_SCALE

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")

_QUANTUM = Decimal(1).scaleb(-POINTS_SCALE)


def to_decimal(value: Optional[Number]) -> Decimal:
    """
    Convert a point value to Decimal.

    Args:
        value: Decimal, int, float, numeric string or None

    Returns:
        Decimal value (None -> 0)

    Raises:
        ValueError: If value is not a finite number
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a point value: {value!r}")
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValueError(f"Not a point value: {value!r}") from e

    if not result.is_finite():
        raise ValueError(f"Point value must be finite: {value!r}")
    return result


def ratio(numerator: Number, denominator: Number) -> Decimal:
    """Exact quotient; 0 when the denominator is 0"""
    denominator = to_decimal(denominator)
    if denominator == 0:
        return ZERO
    return to_decimal(numerator) / denominator


def truncate(value: Number) -> int:
    """Drop the fractional part (toward zero)"""
    return int(to_decimal(value).to_integral_value(rounding=ROUND_DOWN))


def quantize_points(value: Number) -> Decimal:
    """Round to the storage scale (half-up)"""
    return to_decimal(value).quantize(_QUANTUM, rounding=ROUND_HALF_UP)
