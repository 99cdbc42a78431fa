# backend/revsplit/domain/money.py
from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal(100)


class MoneyError(ValueError):
    """Raised when amount parsing, rounding or formatting fails."""


def to_decimal(value: object, *, field: str = "amount") -> Decimal:
    """
    Convert a user/JSON supplied number into a Decimal at full precision.

    Accepts Decimal, int, float (converted through str so 0.1 stays 0.1)
    and numeric strings. Rejects bools, NaN and infinities.

    Examples:
      "12.345" -> Decimal("12.345")
      7 -> Decimal("7")
      0.1 -> Decimal("0.1")
    """
    if isinstance(value, bool) or value is None:
        raise MoneyError(f"{field} must be a number")

    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float, str)):
        text = str(value).strip()
        if text == "":
            raise MoneyError(f"{field} must be a number")
        try:
            d = Decimal(text)
        except (InvalidOperation, ValueError) as e:
            raise MoneyError(f"{field} must be a number") from e
    else:
        raise MoneyError(f"{field} must be a number")

    if not d.is_finite():
        raise MoneyError(f"{field} must be a finite number")
    return d


def percentage_of(total: Decimal, percent: Decimal) -> Decimal:
    """total * percent / 100, unrounded."""
    return total * percent / HUNDRED


def round_currency(value: Decimal) -> Decimal:
    """
    Quantize to cents with banker's rounding.

    Only the presentation and persistence layers call this; calculations
    keep full precision so errors do not compound across many shares.
    """
    if not isinstance(value, Decimal):
        raise MoneyError("value must be a Decimal")
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def decimal_to_cents(
    value: Number,
    *,
    rounding=ROUND_HALF_EVEN,
    max_abs_cents: int = 10_000_000_00,
) -> int:
    """
    Convert a decimal-like value to integer cents with explicit rounding.

    Examples:
      "12.34" -> 1234
      "12.345" -> 1234 (half-even)
      "12.355" -> 1236 (half-even)
    """
    d = to_decimal(value)
    cents = int((d * HUNDRED).quantize(Decimal("1"), rounding=rounding))

    if abs(cents) > max_abs_cents:
        raise MoneyError("amount exceeds safety limit")

    return cents


def cents_to_decimal(cents: int) -> Decimal:
    if not isinstance(cents, int) or isinstance(cents, bool):
        raise MoneyError("cents must be an int")
    return Decimal(cents) / HUNDRED


def format_amount(value: Number, symbol: str = "$") -> str:
    """
    Format an amount for display, e.g. "$1,234.50" or "-$10.00".
    """
    cents = decimal_to_cents(value)
    sign = "-" if cents < 0 else ""
    abs_cents = abs(cents)
    return f"{sign}{symbol}{abs_cents // 100:,}.{abs_cents % 100:02d}"
