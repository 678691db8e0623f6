"""Unit tests for money and number helpers."""

import pytest

from proposal_engine.services.money import (
    format_currency,
    format_date,
    format_maybe,
    format_phone,
    round2,
    to_number,
)


@pytest.mark.parametrize("value,expected", [
    (None, 0.0),
    ("", 0.0),
    (12, 12.0),
    (True, 1.0),
    ("1,500 sq ft", 1500.0),
    ("$22.50", 22.5),
    ("abc", 0.0),
    (float("nan"), 0.0),
    (float("inf"), 0.0),
    ("1.2.3", 1.2),
    ("-4", -4.0),
])
def test_to_number(value, expected):
    """Loose input parses or degrades to zero."""
    assert to_number(value) == expected


def test_round2_half_up():
    """Halves round away from zero."""
    assert round2(1.005) == 1.01
    assert round2(2.675) == 2.68
    assert round2("bad") == 0.0


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(0) == "$0.00"
    assert format_currency(-5) == "-$5.00"
    assert format_currency(None) == "$0.00"


def test_format_maybe_hides_with_placeholder():
    """Hidden totals print the configured placeholder."""
    assert format_maybe(True, 100) == "TBD"
    assert format_maybe(False, 100) == "$100.00"


def test_currency_symbol_from_settings(mock_settings, monkeypatch):
    monkeypatch.setattr(mock_settings, "currency_symbol", "€")
    assert format_currency(10) == "€10.00"


def test_format_phone():
    assert format_phone("5085551234") == "(508) 555-1234"
    assert format_phone("1-508-555-1234") == "(508) 555-1234"
    assert format_phone("555-1234") == "555-1234"
    assert format_phone(None) == ""


def test_format_date():
    assert format_date("2024-03-05") == "03/05/2024"
    assert format_date("2024-03-05T10:00:00") == "03/05/2024"
    assert format_date("next week") == "next week"
