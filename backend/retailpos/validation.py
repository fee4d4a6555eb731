from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


TWO_PLACES = Decimal("0.01")

# Numeric(10, 2) upper bound
MAX_AMOUNT = Decimal("99999999.99")

ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    """Round to two places, half-up (fixed-point money/quantity precision)."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Coerce JSON/CLI input into a two-place Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans, NaN and infinities
    are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", details={"field": field})

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} is required", details={"field": field})
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", details={"field": field})
    else:
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})

    result = quantize(result)
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} is out of range", details={"field": field})
    return result


def positive_decimal(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result <= 0:
        raise ValidationError(f"{field} must be greater than 0", details={"field": field})
    return result


def non_negative_decimal(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < 0:
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    return result


def to_int(value: Any, field: str) -> int:
    """Strict integer ids: rejects floats, bools and decimal strings."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", details={"field": field})


def decimal_str(value: Decimal | None) -> str | None:
    """JSON serialization for Numeric columns."""
    if value is None:
        return None
    return str(quantize(Decimal(str(value))))
