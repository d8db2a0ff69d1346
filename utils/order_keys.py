"""
Order number helpers.

Order numbers look like "DO-100A": a letter prefix, a dash, digits, and an
optional trailing section letter. The base order key ("DO-100") identifies
the commercial order; the letter identifies one section of it.
"""

import re
from string import ascii_uppercase
from typing import Iterable

from exceptions import SuffixExhaustedError


_BASE_KEY_PATTERN = re.compile(r"^[A-Za-z]+-\d+")

GROUP_ID_SEPARATOR = "::"


def resolve_base_order_key(order_number: str) -> str:
    """
    Extract the base order key from a possibly suffixed order number.

    "DO-022A" → "DO-022", "DO-022" → "DO-022". Numbers that do not match
    PREFIX-<digits> come back unchanged (stripped).
    """
    text = (order_number or "").strip()
    match = _BASE_KEY_PATTERN.match(text)
    return match.group(0) if match else text


def section_suffix(order_number: str, base_order_key: str) -> str:
    """Trailing section part of an order number, "" when unsuffixed."""
    text = (order_number or "").strip()
    if base_order_key and text.startswith(base_order_key):
        return text[len(base_order_key):].strip()
    return ""


def make_group_id(customer_name: str, base_order_key: str) -> str:
    """Stable id of a (customer, base order) bucket."""
    return f"{customer_name}{GROUP_ID_SEPARATOR}{base_order_key}"


def next_free_suffix(occupied: Iterable[str], base_order_key: str = "") -> str:
    """
    First unused section letter starting at "A".

    Args:
        occupied: Suffixes already in use (case-insensitive; "" is ignored)
        base_order_key: Only used for the error message

    Raises:
        SuffixExhaustedError: If A-Z are all taken
    """
    taken = {s.strip().upper() for s in occupied if s and s.strip()}
    for letter in ascii_uppercase:
        if letter not in taken:
            return letter
    raise SuffixExhaustedError(base_order_key)
