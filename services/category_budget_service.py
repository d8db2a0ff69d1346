"""
Category budget aggregation.

The budget of a category is the total ordered quantity of the persisted
lines of that category within one base order. It is a static property of
the order: approvals made during a session are tracked by the allocator and
never folded back into it.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from models.order_line import LineOrigin, ProductLine


def compute_category_budgets(lines: Iterable[ProductLine]) -> dict[str, Decimal]:
    """
    Sum ordered quantity per category, skipping synthetic lines.

    Categories appear in first-seen order.
    """
    budgets: dict[str, Decimal] = {}
    for line in lines:
        if line.origin == LineOrigin.SYNTHETIC:
            continue
        budgets[line.category] = budgets.get(line.category, Decimal("0")) + line.ordered_qty
    return budgets


def lines_by_category(lines: Iterable[ProductLine]) -> dict[str, list[ProductLine]]:
    """Group lines (synthetic included) per category, first-seen order."""
    grouped: dict[str, list[ProductLine]] = defaultdict(list)
    for line in lines:
        grouped[line.category].append(line)
    return dict(grouped)
