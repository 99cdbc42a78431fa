# backend/revsplit/domain/invoice_math.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Tuple, Union

from revsplit.domain.money import percentage_of, round_currency

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
FREQUENCIES = (DAILY, WEEKLY, MONTHLY)


class InvoiceMathError(ValueError):
    """Raised when invoice or schedule arithmetic gets unusable input."""


@dataclass(frozen=True)
class LineAmount:
    """The two values of a line item that drive invoice totals."""
    amount: Decimal
    tax_rate: Optional[Decimal] = None


def line_item_amount(quantity: Decimal, rate: Decimal) -> Decimal:
    return quantity * rate


def invoice_subtotal(lines: Iterable[LineAmount]) -> Decimal:
    return sum((line.amount for line in lines), Decimal(0))


def invoice_tax(lines: Iterable[LineAmount]) -> Decimal:
    """Sum of amount * tax_rate / 100 over lines that carry a tax rate."""
    total = Decimal(0)
    for line in lines:
        if line.tax_rate:
            total += percentage_of(line.amount, line.tax_rate)
    return total


def recalculate_invoice_totals(
    lines: Iterable[LineAmount],
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Returns (subtotal, tax, total) rounded to cents.

    total is the sum of the unrounded subtotal and tax, rounded once.
    """
    lines = list(lines)
    subtotal = invoice_subtotal(lines)
    tax = invoice_tax(lines)
    return round_currency(subtotal), round_currency(tax), round_currency(subtotal + tax)


DateLike = Union[date, datetime]


def _add_month(d: DateLike) -> DateLike:
    year = d.year + (d.month // 12)
    month = d.month % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return d.replace(year=year, month=month, day=day)


def next_issue_date(current: DateLike, frequency: str) -> DateLike:
    """
    Advance a recurring schedule by one period.

    Monthly steps keep the day of month where possible and clamp to the
    last day otherwise (Jan 31 -> Feb 28/29).
    """
    if frequency == DAILY:
        return current + timedelta(days=1)
    if frequency == WEEKLY:
        return current + timedelta(days=7)
    if frequency == MONTHLY:
        return _add_month(current)
    raise InvoiceMathError(f"unknown frequency: {frequency}")
