"""
Allocation Service: distributes approved quantity across the lines of base
order groups, borrowing unused budget between categories.

State changes go through apply_event(state, event), which works on a copy and
recomputes every line's diagnostics from scratch. Budget and rate problems
are diagnostics, never exceptions.

Quantity evaluation per group:
1. COLLECT claims: selected lines with approved qty > 0, ordered by the edit
   sequence of their last quantity change, then display order
2. TAKE own pool: each claim draws min(qty, own remaining) from its
   category budget
3. BORROW: claims still short draw the shortfall from other categories'
   remaining budget, so earlier commits keep what they hold
4. FLAG claims whose shortfall exceeds all remaining headroom
5. CHECK final rate against the unit floor rate

Borrow source policy: the single source with the smallest remainder that
covers the whole shortfall; if none does, sources in descending remainder
order. Ties go to the category seen first in the group.
"""

from decimal import Decimal
from typing import Callable

import structlog

from exceptions import (
    InvalidAllocationEventError,
    LineNotFoundError,
    OrderGroupNotFoundError,
)
from models.allocation import (
    AddSyntheticLineEvent,
    AllocationEntry,
    AllocationEvent,
    AllocationState,
    BorrowDraw,
    CategoryBudgetSummary,
    LineDiagnostics,
)
from models.order_group import BaseOrderGroup
from models.order_line import MISSING, LineOrigin, ProductLine
from services.category_budget_service import lines_by_category
from utils.category_matcher import resolve_category
from utils.order_keys import next_free_suffix, section_suffix
from utils.text_utils import clean_text, format_money, format_qty

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


# ===================
# STATE ACCESS
# ===================

def start_allocation(groups: list[BaseOrderGroup], select_all: bool = True) -> AllocationState:
    """
    Open a fresh allocation state over some groups.

    Args:
        groups: Base order groups to allocate
        select_all: Create a selected entry for every line
    """
    state = AllocationState(groups=list(groups))
    if select_all:
        for group in state.groups:
            for line in group.all_lines:
                state.entries[line.line_id] = AllocationEntry(selected=True)
    return evaluate_state(state)


def lines_for_group(state: AllocationState, group: BaseOrderGroup) -> list[ProductLine]:
    """Persisted lines of the group followed by its synthetic lines, in display order."""
    synthetic = [
        line for line in state.synthetic_lines
        if line.customer_name == group.customer_name
        and line.base_order_key == group.base_order_key
    ]
    return list(group.all_lines) + synthetic


def find_line(state: AllocationState, line_id: str) -> ProductLine:
    """
    Raises:
        LineNotFoundError: If the line is not part of the session
    """
    for group in state.groups:
        for line in lines_for_group(state, group):
            if line.line_id == line_id:
                return line
    raise LineNotFoundError(line_id)


def _find_group(state: AllocationState, group_id: str) -> BaseOrderGroup:
    for group in state.groups:
        if group.group_id == group_id:
            return group
    raise OrderGroupNotFoundError(group_id)


def _entry_for(state: AllocationState, line_id: str) -> AllocationEntry:
    """Existing entry, or a new selected one."""
    find_line(state, line_id)
    entry = state.entries.get(line_id)
    if entry is None:
        entry = AllocationEntry(selected=True)
        state.entries[line_id] = entry
    return entry


# ===================
# EVENT HANDLERS
# ===================

def _select_line(state, event):
    _entry_for(state, event.line_id).selected = True


def _deselect_line(state, event):
    find_line(state, event.line_id)
    entry = state.entries.get(event.line_id)
    if entry is not None:
        entry.selected = False


def _set_approved_qty(state, event):
    entry = _entry_for(state, event.line_id)
    state.sequence += 1
    entry.approved_qty = event.qty
    entry.sequence = state.sequence


def _set_final_rate(state, event):
    _entry_for(state, event.line_id).final_rate = event.rate


def _set_sku(state, event):
    _entry_for(state, event.line_id).chosen_sku = clean_text(event.sku_name)


def _set_remark(state, event):
    _entry_for(state, event.line_id).remark = clean_text(event.remark, max_length=1000)


def _set_overall_remark(state, event):
    state.overall_remark = clean_text(event.remark, max_length=1000)


def _add_synthetic_line(state: AllocationState, event: AddSyntheticLineEvent):
    group = _find_group(state, event.group_id)
    synthetic = [line for line in lines_for_group(state, group) if line.is_synthetic]

    if event.section_id:
        if event.section_id in group.sections:
            raise InvalidAllocationEventError(
                f"Section {event.section_id} already exists; new lines go to a new section",
                details={"group_id": group.group_id, "section_id": event.section_id}
            )
        known = {}
        for line in synthetic:
            known.setdefault(line.order_number, line.context)
        if event.section_id not in known:
            raise InvalidAllocationEventError(
                f"Section {event.section_id} is not part of {group.base_order_key}",
                details={"group_id": group.group_id, "section_id": event.section_id}
            )
        order_number = event.section_id
        suffix = section_suffix(order_number, group.base_order_key)
        context = known[order_number]
    else:
        occupied = [s.suffix for s in group.sections.values()]
        occupied += [line.section_suffix for line in synthetic]
        suffix = next_free_suffix(occupied, group.base_order_key)
        order_number = f"{group.base_order_key}{suffix}"
        context = group.context

    state.synthetic_counter += 1
    sku_name = clean_text(event.sku_name)
    line = ProductLine(
        line_id=f"synthetic-{order_number}-{state.synthetic_counter}",
        record_id=None,
        order_number=order_number,
        base_order_key=group.base_order_key,
        section_suffix=suffix,
        customer_name=group.customer_name,
        product_name=event.product_name.strip(),
        sku_name=sku_name,
        category=resolve_category(event.category, event.product_name),
        uom=clean_text(event.uom) or MISSING,
        ordered_qty=ZERO,
        unit_floor_rate=event.unit_floor_rate,
        origin=LineOrigin.SYNTHETIC,
        context=context,
    )
    state.synthetic_lines.append(line)
    state.entries[line.line_id] = AllocationEntry(selected=True, chosen_sku=sku_name)

    logger.info(
        "synthetic_line_added",
        group_id=group.group_id,
        line_id=line.line_id,
        order_number=order_number,
        category=line.category
    )


def _remove_synthetic_line(state, event):
    line = find_line(state, event.line_id)
    if line.origin != LineOrigin.SYNTHETIC:
        raise InvalidAllocationEventError(
            "Only lines added in this session can be removed",
            details={"line_id": event.line_id}
        )
    state.synthetic_lines = [
        line for line in state.synthetic_lines if line.line_id != event.line_id
    ]
    state.entries.pop(event.line_id, None)
    state.diagnostics.pop(event.line_id, None)


def _set_checklist_item(state, event):
    setattr(state.checklist, event.item, event.decision)


_HANDLERS: dict[str, Callable] = {
    "select_line": _select_line,
    "deselect_line": _deselect_line,
    "set_approved_qty": _set_approved_qty,
    "set_final_rate": _set_final_rate,
    "set_sku": _set_sku,
    "set_remark": _set_remark,
    "set_overall_remark": _set_overall_remark,
    "add_synthetic_line": _add_synthetic_line,
    "remove_synthetic_line": _remove_synthetic_line,
    "set_checklist_item": _set_checklist_item,
}


def apply_event(state: AllocationState, event: AllocationEvent) -> AllocationState:
    """
    Apply one event and return the new state. The input state is not modified.

    Raises:
        LineNotFoundError: Event names a line outside the session
        OrderGroupNotFoundError: Synthetic line added to an unknown group
        InvalidAllocationEventError: Event not applicable (e.g. removing a persisted line)
        SuffixExhaustedError: No section letter left for a new section
    """
    handler = _HANDLERS.get(event.type)
    if handler is None:
        raise InvalidAllocationEventError(
            f"Unsupported event type: {event.type}",
            details={"type": event.type}
        )

    new_state = state.model_copy(deep=True)
    handler(new_state, event)
    return evaluate_state(new_state)


# ===================
# EVALUATION
# ===================

def choose_borrow_sources(headroom: dict[str, Decimal], shortfall: Decimal) -> list[BorrowDraw]:
    """
    Decide which categories lend a shortfall.

    Args:
        headroom: Category -> positive remaining budget, in first-seen order
        shortfall: Quantity to cover, not more than the total headroom

    Returns:
        Draws in the order they are taken
    """
    sufficient = [(category, left) for category, left in headroom.items() if left >= shortfall]
    if sufficient:
        # min() keeps the first of equal remainders
        category, _ = min(sufficient, key=lambda item: item[1])
        return [BorrowDraw(category=category, qty=shortfall)]

    draws = []
    remaining = shortfall
    for category, left in sorted(headroom.items(), key=lambda item: item[1], reverse=True):
        if remaining <= 0:
            break
        take = min(left, remaining)
        draws.append(BorrowDraw(category=category, qty=take))
        remaining -= take
    return draws


def _borrow_notice(line: ProductLine, own: Decimal, draws: list[BorrowDraw]) -> str:
    first, rest = draws[0], draws[1:]
    notice = (
        f"Using {format_qty(own)} from {line.category} budget and borrowing "
        f"{format_qty(first.qty)} from {first.category}"
    )
    for draw in rest:
        notice += f" and {format_qty(draw.qty)} from {draw.category}"
    return notice


def evaluate_group(
    group: BaseOrderGroup,
    lines: list[ProductLine],
    entries: dict[str, AllocationEntry],
) -> dict[str, LineDiagnostics]:
    """
    Diagnostics for the selected lines of one group.

    Args:
        group: Group providing the category budgets
        lines: All lines of the group (synthetic included), display order
        entries: Allocation entries by line id

    Returns:
        Line id -> LineDiagnostics for every selected line
    """
    position = {line.line_id: index for index, line in enumerate(lines)}
    selected = [
        line for line in lines
        if line.line_id in entries and entries[line.line_id].selected
    ]
    diagnostics = {line.line_id: LineDiagnostics() for line in selected}

    claims = [
        line for line in selected
        if entries[line.line_id].approved_qty is not None
        and entries[line.line_id].approved_qty > 0
    ]
    claims.sort(key=lambda line: (entries[line.line_id].sequence, position[line.line_id]))

    # Step 1: own pool
    remaining = dict(group.category_budgets)
    for line in claims:
        qty = entries[line.line_id].approved_qty
        own = min(qty, max(remaining.get(line.category, ZERO), ZERO))
        if line.category in remaining:
            remaining[line.category] -= own
        diagnostics[line.line_id].own_qty = own

    # Step 2: borrowing, in claim order
    for line in claims:
        qty = entries[line.line_id].approved_qty
        diag = diagnostics[line.line_id]
        shortfall = qty - diag.own_qty

        if shortfall <= 0:
            budget = group.category_budgets.get(line.category, ZERO)
            diag.notice = (
                f"Using {format_qty(qty)} from {line.category}'s {format_qty(budget)} budget"
            )
            continue

        headroom = {
            category: left for category, left in remaining.items()
            if category != line.category and left > 0
        }
        other_total = sum(headroom.values(), ZERO)

        if other_total >= shortfall:
            draws = choose_borrow_sources(headroom, shortfall)
            for draw in draws:
                remaining[draw.category] -= draw.qty
            diag.borrowed = draws
            diag.notice = _borrow_notice(line, diag.own_qty, draws)
        else:
            available = diag.own_qty + other_total
            diag.qty_error = (
                f"Exceeds total available budget ({format_qty(available)} available)"
            )

    # Step 3: rate floor and eligibility
    for line in selected:
        entry = entries[line.line_id]
        diag = diagnostics[line.line_id]
        if entry.final_rate is not None and entry.final_rate < line.unit_floor_rate:
            diag.rate_error = f"Minimum ₹{format_money(line.unit_floor_rate)}"
        if diag.error:
            diag.notice = None
        diag.eligible = (
            entry.final_rate is not None
            and entry.final_rate >= line.unit_floor_rate
            and diag.qty_error is None
        )

    return diagnostics


def evaluate_state(state: AllocationState) -> AllocationState:
    """Recompute diagnostics for every group of the state in place."""
    diagnostics: dict[str, LineDiagnostics] = {}
    for group in state.groups:
        diagnostics.update(
            evaluate_group(group, lines_for_group(state, group), state.entries)
        )
    state.diagnostics = diagnostics
    return state


def summarize_group(state: AllocationState, group: BaseOrderGroup) -> dict[str, CategoryBudgetSummary]:
    """
    Budget, approved and remaining quantity per category of one group.

    Approved sums count selected lines only. Remaining is negative for a
    category whose lines borrowed or overran.
    """
    approved: dict[str, Decimal] = {category: ZERO for category in group.category_budgets}
    for category, lines in lines_by_category(lines_for_group(state, group)).items():
        total = approved.get(category, ZERO)
        for line in lines:
            entry = state.entries.get(line.line_id)
            if entry is not None and entry.selected and entry.approved_qty is not None:
                total += entry.approved_qty
        approved[category] = total

    return {
        category: CategoryBudgetSummary(
            budget=group.category_budgets.get(category, ZERO),
            approved=qty,
            remaining=group.category_budgets.get(category, ZERO) - qty,
        )
        for category, qty in approved.items()
    }
