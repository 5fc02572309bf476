from __future__ import annotations

import pytest

from planete_oui_connector.util.money import AMOUNT_PLACEHOLDER, format_amount, parse_euro_amount


def test_parse_euro_amount_basic() -> None:
    assert parse_euro_amount("12.34€") == 12.34


def test_placeholder_is_absent() -> None:
    assert parse_euro_amount(AMOUNT_PLACEHOLDER) is None
    assert parse_euro_amount("__.__€") is None
    assert parse_euro_amount(" __.__€ ") is None


def test_whitespace_tolerant() -> None:
    assert parse_euro_amount("  5€ ") == 5.0


def test_french_decimal_comma_and_thousands_space() -> None:
    assert parse_euro_amount("1 234,56 €") == 1234.56
    assert parse_euro_amount("45,67\xa0€") == 45.67


@pytest.mark.parametrize("value", ["€", "abc€", "nan€", "12.3.4€", "_.__€"])
def test_unparseable_amounts_raise(value: str) -> None:
    with pytest.raises(ValueError):
        parse_euro_amount(value)


def test_format_amount_two_decimals() -> None:
    assert format_amount(45.67) == "45.67"
    assert format_amount(5.0) == "5.00"
    assert format_amount(0.125) == "0.13"


@pytest.mark.parametrize("value", ["-5€", "-0,01 €"])
def test_negative_amounts_raise(value: str) -> None:
    with pytest.raises(ValueError, match="negative"):
        parse_euro_amount(value)
