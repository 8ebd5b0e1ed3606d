from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from orderflow.time_utils import parse_iso_date


# Maximum amount accepted on any money field: 9,999,999,999.99
# Matches the Numeric(12, 2) columns used for amounts
MAX_AMOUNT = Decimal("9999999999.99")

TWOPLACES = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class LockViolationError(ValueError):
    """409-level rejection: the record is anchored by dependent records."""


class NotFoundError(LookupError):
    """404-level: the referenced record does not exist."""


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a JSON/number value to Decimal without going through binary floats.

    Floats are converted via str() so 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
        if not result.is_finite():
            raise ValidationError(f"{field} must be a finite number")
        return result
    raise ValidationError(f"{field} must be a number")


def money(value: Any, field: str = "amount") -> Decimal:
    """Quantize to cents (ROUND_HALF_UP)."""
    amount = to_decimal(value, field).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT}")
    return amount


def optional_money(value: Any, field: str = "amount") -> Decimal | None:
    if value is None or value == "":
        return None
    return money(value, field)


def to_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Rejects floats, decimals in strings and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return to_int(value, field)


def to_date(value: Any, field: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def optional_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    return to_date(value, field)


def optional_str(value: Any, field: str, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if len(stripped) > max_length:
        raise ValidationError(f"{field} exceeds maximum length of {max_length}")
    return stripped


def require_str(value: Any, field: str, max_length: int = 255) -> str:
    result = optional_str(value, field, max_length)
    if result is None:
        raise ValidationError(f"{field} is required")
    return result
