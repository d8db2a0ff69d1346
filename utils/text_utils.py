"""
Text utilities for raw order records.

Used for field cleaning in the record normalizer and for accent/case
insensitive keyword matching of product names.
"""

import unicodedata
from decimal import Decimal, InvalidOperation
import re
from typing import Any, Optional


_NUMBER_NOISE = re.compile(r"(?i)rs\.?|inr|[\s,₹$]")


def fold_text(value: Optional[str]) -> str:
    """
    Fold text for comparison: strip accents, lowercase, collapse spaces.

    - "Sunflower  Oil" → "sunflower oil"
    - "Palmoléine" → "palmoleine"

    Args:
        value: Original text (may have accents, mixed case)

    Returns:
        Folded string, empty for None/blank input
    """
    if not value:
        return ""

    # Normalize unicode (NFD decomposition separates base chars from accents)
    normalized = unicodedata.normalize('NFD', str(value))

    # Remove accent marks (combining characters in Unicode category 'Mn')
    ascii_text = ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )

    return " ".join(ascii_text.lower().split())


def clean_text(value: Any, max_length: int = 255) -> Optional[str]:
    """
    Clean a raw field value for storage.

    - Strips whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only values

    Args:
        value: Raw field value (any type)
        max_length: Maximum characters to keep

    Returns:
        Cleaned text or None
    """
    if value is None or isinstance(value, bool):
        return None

    text = str(value).strip()

    if not text:
        return None

    if len(text) > max_length:
        text = text[:max_length]

    return text


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a loosely formatted number.

    Accepts ints, floats, Decimals and strings such as "1,250.50",
    "₹ 1,25,000.50" or "1e3". Only currency marks, whitespace and thousands
    separators are dropped; anything else that is not a number gives None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, (int, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
        return result if result.is_finite() else None

    text = _NUMBER_NOISE.sub("", str(value))
    if not text:
        return None

    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def parse_flag(value: Any) -> bool:
    """Read yes/no style values ("Yes", "true", 1, True) as a boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return fold_text(clean_text(value)) in {"yes", "y", "true", "1"}


def format_qty(value: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros: 150.00 → "150"."""
    if value == value.to_integral_value():
        return f"{value.to_integral_value():f}"
    return f"{value.normalize():f}"


def format_money(value: Decimal) -> str:
    """Render an amount with two decimals: 42.5 → "42.50"."""
    return f"{value:.2f}"
