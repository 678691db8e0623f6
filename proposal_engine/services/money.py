"""Money and number helpers.

Every numeric value in a proposal passes through these helpers. They are
total: loosely typed input (form strings like "1,200 ft", None, NaN)
degrades to zero instead of raising.
"""

import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from proposal_engine.config.settings import settings

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_CENT = Decimal("0.01")


def to_number(value: Any) -> float:
    """
    Parse loosely typed numeric input.

    Handles:
    - Numbers (int/float): returned as float when finite
    - Booleans: 1.0 / 0.0
    - Strings like "1,500 sq ft" or "$22.50": everything except digits,
      '.' and '-' is stripped before parsing
    - Empty/None/unparseable/non-finite: 0.0

    Returns:
        A finite float, never raises
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else 0.0
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        # "1.2.3" or "--5" style leftovers: take the longest parseable prefix
        match = re.match(r"-?\d*\.?\d+", cleaned)
        if not match:
            return 0.0
        number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def round2(value: Any) -> float:
    """Round to two decimals, half away from zero (1.005 -> 1.01)."""
    number = to_number(value)
    try:
        rounded = Decimal(repr(number)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return 0.0
    return float(rounded)


def format_currency(value: Any) -> str:
    """Format a number as currency, e.g. 1234.5 -> '$1,234.50'.

    Non-finite or unparseable input renders as the zero-currency string.
    """
    number = round2(value)
    symbol = settings.currency_symbol
    if number < 0:
        return f"-{symbol}{abs(number):,.2f}"
    return f"{symbol}{number:,.2f}"


def format_maybe(hide: bool, value: Any) -> str:
    """Return the hidden-total placeholder when hide is set, else the formatted amount."""
    if hide:
        return settings.hidden_total_placeholder
    return format_currency(value)


def format_phone(value: Any) -> str:
    """Format 10-digit (or 1 + 10-digit) phone numbers as '(123) 456-7890'.

    Anything else is returned as given.
    """
    raw = "" if value is None else str(value)
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return raw
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def format_date(value: Any) -> str:
    """Render an ISO date (YYYY-MM-DD) as MM/DD/YYYY; other input is returned unchanged."""
    raw = "" if value is None else str(value)
    match = _ISO_DATE.match(raw.strip())
    if not match:
        return raw
    year, month, day = match.groups()
    return f"{month}/{day}/{year}"
