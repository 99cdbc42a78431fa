from decimal import Decimal

import pytest

from revsplit.domain.money import (
    MoneyError,
    cents_to_decimal,
    decimal_to_cents,
    format_amount,
    percentage_of,
    round_currency,
    to_decimal,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("12.345", Decimal("12.345")),
        (7, Decimal("7")),
        (0.1, Decimal("0.1")),
        (" 3.50 ", Decimal("3.50")),
        (Decimal("1.1"), Decimal("1.1")),
    ],
)
def test_to_decimal_accepts_numbers(value, expected):
    assert to_decimal(value) == expected


@pytest.mark.parametrize("value", [True, None, "", "abc", "NaN", "Infinity", [1]])
def test_to_decimal_rejects_non_numbers(value):
    with pytest.raises(MoneyError):
        to_decimal(value)


def test_to_decimal_names_the_field():
    with pytest.raises(MoneyError, match="rate"):
        to_decimal("x", field="rate")


def test_percentage_of_is_unrounded():
    assert percentage_of(Decimal("10.01"), Decimal("33.3")) == Decimal("3.33333")


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2.675", "2.68"),
        ("2.665", "2.66"),
        ("0.125", "0.12"),
        ("-1.005", "-1.00"),
        ("5", "5.00"),
    ],
)
def test_round_currency_half_even(value, expected):
    assert str(round_currency(Decimal(value))) == expected


def test_round_currency_requires_decimal():
    with pytest.raises(MoneyError):
        round_currency(1.5)  # type: ignore[arg-type]


def test_decimal_to_cents_examples():
    assert decimal_to_cents("12.34") == 1234
    assert decimal_to_cents("12.345") == 1234
    assert decimal_to_cents("12.355") == 1236


def test_decimal_to_cents_safety_limit():
    with pytest.raises(MoneyError):
        decimal_to_cents("10000000.01")


def test_cents_to_decimal():
    assert cents_to_decimal(1234) == Decimal("12.34")
    with pytest.raises(MoneyError):
        cents_to_decimal(True)


@pytest.mark.parametrize(
    "value, expected",
    [
        (Decimal("1234.5"), "$1,234.50"),
        (Decimal("-10"), "-$10.00"),
        ("0.005", "$0.00"),
        (0, "$0.00"),
    ],
)
def test_format_amount(value, expected):
    assert format_amount(value) == expected


def test_format_amount_symbol():
    assert format_amount(Decimal("99.9"), symbol="€") == "€99.90"
