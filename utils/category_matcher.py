"""
Commodity category inference from free-text product names.

Best-effort fallback for records that carry no explicit oil type. Rules are
checked in table order and the first rule with a matching keyword wins, so
"Rice Bran Soya Blend" is Rice Bran. Matching is case and accent
insensitive and works on whole words only ("sun" never matches "sunday").
"""

import re
from typing import Optional

from models.order_line import Category
from utils.text_utils import fold_text


# (category, keywords) in priority order. Multi-word keywords match as phrases.
CATEGORY_KEYWORDS: list[tuple[Category, tuple[str, ...]]] = [
    (Category.PALM, (
        "palm", "palmolein", "palmoline", "pamolein", "palmolien",
        "rbd palm", "cpo", "rbdpo",
    )),
    (Category.RICE_BRAN, (
        "rice bran", "ricebran", "rice", "rbo",
    )),
    (Category.SOYA, (
        "soya", "soyabean", "soybean", "soy", "sbo", "soyabin",
    )),
    (Category.SUNFLOWER, (
        "sunflower", "sun flower", "sunflwr", "sfo",
    )),
    (Category.MUSTARD, (
        "mustard", "kachi ghani", "kachchi ghani", "kgmo", "sarson",
    )),
    (Category.GROUNDNUT, (
        "groundnut", "ground nut", "peanut", "gnut", "moongfali",
    )),
    (Category.COTTONSEED, (
        "cottonseed", "cotton seed", "cso", "cotton",
    )),
]


def _compile(keywords: tuple[str, ...]) -> re.Pattern:
    alternatives = "|".join(
        re.escape(k).replace(r"\ ", r"\s+") for k in sorted(keywords, key=len, reverse=True)
    )
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?![a-z0-9])")


_RULES: list[tuple[Category, re.Pattern]] = [
    (category, _compile(keywords)) for category, keywords in CATEGORY_KEYWORDS
]

_CANONICAL_NAMES = {fold_text(c.value): c.value for c in Category}


def infer_category(product_name: Optional[str]) -> Optional[str]:
    """
    Infer the category from a product name.

    Args:
        product_name: Free-text product or SKU name

    Returns:
        Canonical category name, or None when no keyword matches
    """
    folded = fold_text(product_name)
    if not folded:
        return None

    for category, pattern in _RULES:
        if pattern.search(folded):
            return category.value
    return None


def resolve_category(explicit: Optional[str], product_name: Optional[str]) -> str:
    """
    Pick the category of a line.

    An explicit category wins and is canonicalised when it names a known
    commodity ("PALM OIL" → "Palm"); unknown explicit values are kept as
    given. Without one, the product name is scanned; no match is "Unknown".
    """
    if explicit and explicit.strip() and explicit.strip() != "—":
        text = explicit.strip()
        folded = fold_text(text)
        if folded in _CANONICAL_NAMES:
            return _CANONICAL_NAMES[folded]
        return infer_category(text) or text

    return infer_category(product_name) or Category.UNKNOWN.value
