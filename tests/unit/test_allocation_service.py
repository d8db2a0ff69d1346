"""
Unit tests for the allocation service.

Tests cover own-pool allocation, borrowing between categories, rate floors,
submission gating and synthetic line handling.
"""

from decimal import Decimal
from string import ascii_uppercase

import pytest

from exceptions import (
    InvalidAllocationEventError,
    LineNotFoundError,
    OrderGroupNotFoundError,
    SuffixExhaustedError,
)
from models.allocation import (
    AddSyntheticLineEvent,
    DeselectLineEvent,
    RemoveSyntheticLineEvent,
    SelectLineEvent,
    SetApprovedQtyEvent,
    SetChecklistItemEvent,
    SetFinalRateEvent,
    SetOverallRemarkEvent,
    SetRemarkEvent,
    SetSkuEvent,
)
from models.order_line import LineOrigin
from services.allocation_service import (
    apply_event,
    choose_borrow_sources,
    start_allocation,
    summarize_group,
)
from tests.factories import ProductLineFactory, make_group, make_groups


# ===================
# HELPERS
# ===================

def set_qty(state, line_id, qty):
    return apply_event(state, SetApprovedQtyEvent(line_id=line_id, qty=Decimal(str(qty))))


def set_rate(state, line_id, rate):
    return apply_event(state, SetFinalRateEvent(line_id=line_id, rate=Decimal(str(rate))))


# ===================
# FIXTURES
# ===================

@pytest.fixture
def two_category_group():
    """Palm budget 100 (lines a1, a2) and Soya budget 50 (line b1)."""
    return make_group(
        ProductLineFactory.create(line_id="a1", category="Palm", ordered_qty=100),
        ProductLineFactory.create(line_id="b1", category="Soya", ordered_qty=50),
        ProductLineFactory.create(line_id="a2", category="Palm", ordered_qty=0),
    )


@pytest.fixture
def sectioned_group():
    """DO-100 with sections A and B."""
    return make_group(
        ProductLineFactory.create(line_id="p1", order_number="DO-100A", category="Palm"),
        ProductLineFactory.create(line_id="p2", order_number="DO-100B", category="Soya", ordered_qty=50),
    )


# ===================
# OWN POOL TESTS
# ===================

class TestOwnPool:
    """Allocations that fit in their own category budget."""

    def test_within_budget_has_notice_and_no_error(self, two_category_group):
        state = start_allocation([two_category_group])

        state = set_qty(state, "a1", 60)

        assert state.errors_by_line == {}
        assert state.notices_by_line["a1"] == "Using 60 from Palm's 100 budget"

    def test_category_sum_within_budget_never_errors(self):
        group = make_group(
            ProductLineFactory.create(line_id="x", category="Palm", ordered_qty=50),
            ProductLineFactory.create(line_id="y", category="Palm", ordered_qty=50),
            ProductLineFactory.create(line_id="z", category="Palm", ordered_qty=50),
        )
        state = start_allocation([group])

        for line_id, qty in (("x", 20), ("y", 70), ("z", 60)):
            state = set_qty(state, line_id, qty)

        assert state.errors_by_line == {}

    def test_over_budget_without_other_categories(self):
        group = make_group(ProductLineFactory.create(line_id="x", category="Palm", ordered_qty=100))
        state = start_allocation([group])

        state = set_qty(state, "x", 120)

        assert state.errors_by_line["x"] == "Exceeds total available budget (100 available)"
        assert "x" not in state.notices_by_line

    def test_zero_quantity_draws_nothing(self, two_category_group):
        state = start_allocation([two_category_group])

        state = set_qty(state, "a1", 0)

        assert state.diagnostics["a1"].notice is None
        assert state.diagnostics["a1"].own_qty == Decimal("0")

    def test_budgets_are_not_mutated(self, two_category_group):
        state = start_allocation([two_category_group])

        state = set_qty(state, "a1", 100)

        assert state.groups[0].category_budgets == {"Palm": Decimal("100"), "Soya": Decimal("50")}


# ===================
# BORROWING TESTS
# ===================

class TestBorrowing:
    """Shortfalls covered by other categories' remaining budget."""

    def test_shortfall_covered_by_other_category(self, two_category_group):
        state = start_allocation([two_category_group])
        state = set_qty(state, "a1", 100)

        state = set_qty(state, "a2", 30)

        assert state.errors_by_line == {}
        assert state.notices_by_line["a2"] == (
            "Using 0 from Palm budget and borrowing 30 from Soya"
        )
        assert state.diagnostics["a2"].borrowed[0].category == "Soya"
        assert state.diagnostics["a2"].borrowed[0].qty == Decimal("30")

    def test_shortfall_beyond_combined_budget_errors(self, two_category_group):
        state = start_allocation([two_category_group])
        state = set_qty(state, "a1", 100)

        state = set_qty(state, "a2", 60)

        assert state.errors_by_line == {
            "a2": "Exceeds total available budget (50 available)"
        }
        assert not state.diagnostics["a2"].eligible

    def test_partial_own_pool_then_borrow(self, two_category_group):
        state = start_allocation([two_category_group])

        state = set_qty(state, "a1", 120)

        assert state.notices_by_line["a1"] == (
            "Using 100 from Palm budget and borrowing 20 from Soya"
        )

    def test_headroom_is_not_borrowed_twice(self):
        group = make_group(
            ProductLineFactory.create(line_id="palm", category="Palm", ordered_qty=100),
            ProductLineFactory.create(line_id="rice", category="Rice Bran", ordered_qty=100),
            ProductLineFactory.create(line_id="soya", category="Soya", ordered_qty=30),
        )
        state = start_allocation([group])

        state = set_qty(state, "palm", 120)
        state = set_qty(state, "rice", 115)

        assert "palm" not in state.errors_by_line
        assert state.errors_by_line["rice"] == "Exceeds total available budget (110 available)"

    def test_last_edited_line_gets_the_error(self, two_category_group):
        state = start_allocation([two_category_group])
        state = set_qty(state, "b1", 50)
        state = set_qty(state, "a1", 60)
        state = set_qty(state, "a2", 60)

        assert list(state.errors_by_line) == ["a2"]

        # Re-editing a1 makes it the newest claim
        state = set_qty(state, "a1", 70)

        assert list(state.errors_by_line) == ["a1"]
        assert state.errors_by_line["a1"] == "Exceeds total available budget (40 available)"

    def test_group_total_within_budget_when_borrowing(self, two_category_group):
        state = start_allocation([two_category_group])

        state = set_qty(state, "a1", 100)
        state = set_qty(state, "a2", 20)
        state = set_qty(state, "b1", 30)

        assert state.errors_by_line == {}
        approved = sum(e.approved_qty for e in state.entries.values() if e.approved_qty)
        assert approved <= sum(state.groups[0].category_budgets.values())

    def test_groups_do_not_share_budget(self):
        groups = make_groups(
            ProductLineFactory.create(line_id="g1", order_number="DO-1A", category="Palm", ordered_qty=10),
            ProductLineFactory.create(line_id="g2", order_number="DO-2A", category="Soya", ordered_qty=500),
        )
        state = start_allocation(groups)

        state = set_qty(state, "g1", 20)

        assert state.errors_by_line["g1"] == "Exceeds total available budget (10 available)"


class TestBorrowSourcePolicy:
    """Which categories lend a shortfall."""

    def test_smallest_sufficient_source_wins(self):
        headroom = {"Soya": Decimal("50"), "Sunflower": Decimal("20")}

        draws = choose_borrow_sources(headroom, Decimal("15"))

        assert [(d.category, d.qty) for d in draws] == [("Sunflower", Decimal("15"))]

    def test_tie_goes_to_first_seen_category(self):
        headroom = {"Soya": Decimal("20"), "Sunflower": Decimal("20")}

        draws = choose_borrow_sources(headroom, Decimal("15"))

        assert draws[0].category == "Soya"

    def test_largest_sources_first_when_none_suffices(self):
        headroom = {"Sunflower": Decimal("20"), "Soya": Decimal("30"), "Mustard": Decimal("5")}

        draws = choose_borrow_sources(headroom, Decimal("40"))

        assert [(d.category, d.qty) for d in draws] == [
            ("Soya", Decimal("30")),
            ("Sunflower", Decimal("10")),
        ]

    def test_multi_source_notice(self):
        group = make_group(
            ProductLineFactory.create(line_id="palm", category="Palm", ordered_qty=100),
            ProductLineFactory.create(line_id="soya", category="Soya", ordered_qty=30),
            ProductLineFactory.create(line_id="sun", category="Sunflower", ordered_qty=20),
        )
        state = start_allocation([group])

        state = set_qty(state, "palm", 140)

        assert state.notices_by_line["palm"] == (
            "Using 100 from Palm budget and borrowing 30 from Soya and 10 from Sunflower"
        )


# ===================
# RATE TESTS
# ===================

class TestRateFloor:
    """Final rate validation against the unit floor rate."""

    @pytest.fixture
    def state(self):
        group = make_group(
            ProductLineFactory.create(line_id="x", category="Palm", ordered_qty=100, unit_floor_rate="42.50")
        )
        return start_allocation([group])

    def test_rate_below_floor(self, state):
        state = set_rate(state, "x", 40)

        assert state.errors_by_line["x"] == "Minimum ₹42.50"
        assert not state.can_submit

    def test_rate_at_floor_is_accepted(self, state):
        state = set_rate(state, "x", "42.5")

        assert state.errors_by_line == {}
        assert state.diagnostics["x"].eligible

    def test_rate_error_hides_notice(self, state):
        state = set_qty(state, "x", 10)
        state = set_rate(state, "x", 1)

        assert state.notices_by_line == {}
        assert state.errors_by_line["x"] == "Minimum ₹42.50"

    def test_both_errors_are_reported(self, state):
        state = set_qty(state, "x", 150)
        state = set_rate(state, "x", 1)

        assert state.errors_by_line["x"] == (
            "Exceeds total available budget (100 available); Minimum ₹42.50"
        )


# ===================
# SELECTION & GATING TESTS
# ===================

class TestSelectionAndGating:
    """Selection changes and submission eligibility."""

    def test_missing_final_rate_blocks_submission(self, two_category_group):
        state = start_allocation([two_category_group])

        assert not state.can_submit
        assert state.blocked_lines["a1"] == "Final rate required"

    def test_all_lines_priced_can_submit(self, two_category_group):
        state = start_allocation([two_category_group])
        for line_id in ("a1", "b1", "a2"):
            state = set_rate(state, line_id, 45)

        assert state.can_submit

    def test_nothing_selected_cannot_submit(self, two_category_group):
        state = start_allocation([two_category_group], select_all=False)

        assert state.entries == {}
        assert not state.can_submit

    def test_deselected_line_releases_budget(self, two_category_group):
        state = start_allocation([two_category_group])
        state = set_qty(state, "a1", 100)
        state = set_qty(state, "a2", 100)
        assert "a2" in state.errors_by_line

        state = apply_event(state, DeselectLineEvent(line_id="a1"))

        assert state.errors_by_line == {}
        assert state.entries["a1"].approved_qty == Decimal("100")
        assert "a1" not in state.diagnostics

    def test_setting_a_value_creates_a_selected_entry(self, two_category_group):
        state = start_allocation([two_category_group], select_all=False)

        state = set_qty(state, "b1", 10)

        assert state.selected_line_ids == ["b1"]

    def test_select_after_deselect(self, two_category_group):
        state = start_allocation([two_category_group])
        state = apply_event(state, DeselectLineEvent(line_id="b1"))

        state = apply_event(state, SelectLineEvent(line_id="b1"))

        assert "b1" in state.selected_line_ids

    def test_sku_and_remarks_are_cleaned(self, two_category_group):
        state = start_allocation([two_category_group])

        state = apply_event(state, SetSkuEvent(line_id="a1", sku_name="  Palm 15kg Tin "))
        state = apply_event(state, SetRemarkEvent(line_id="a1", remark="   "))
        state = apply_event(state, SetOverallRemarkEvent(remark=" urgent "))

        assert state.entries["a1"].chosen_sku == "Palm 15kg Tin"
        assert state.entries["a1"].remark is None
        assert state.overall_remark == "urgent"


class TestEventApplication:
    """Reducer behavior independent of budgets."""

    def test_input_state_is_not_modified(self, two_category_group):
        state = start_allocation([two_category_group])

        new_state = set_qty(state, "a1", 30)

        assert state.entries["a1"].approved_qty is None
        assert new_state.entries["a1"].approved_qty == Decimal("30")

    def test_sequence_increments_on_quantity_change(self, two_category_group):
        state = start_allocation([two_category_group])

        state = set_qty(state, "a1", 10)
        state = set_qty(state, "b1", 10)

        assert state.entries["a1"].sequence == 1
        assert state.entries["b1"].sequence == 2

    def test_unknown_line_raises(self, two_category_group):
        state = start_allocation([two_category_group])

        with pytest.raises(LineNotFoundError):
            set_qty(state, "missing", 10)

    def test_removing_persisted_line_raises(self, two_category_group):
        state = start_allocation([two_category_group])

        with pytest.raises(InvalidAllocationEventError):
            apply_event(state, RemoveSyntheticLineEvent(line_id="a1"))


# ===================
# SYNTHETIC LINE TESTS
# ===================

class TestSyntheticLines:
    """Lines added during the session."""

    def add(self, state, group, **kwargs):
        kwargs.setdefault("product_name", "Sunflower Oil 1L Pouch")
        return apply_event(state, AddSyntheticLineEvent(group_id=group.group_id, **kwargs))

    def test_new_section_gets_next_free_suffix(self, sectioned_group):
        state = start_allocation([sectioned_group])

        state = self.add(state, sectioned_group)

        line = state.synthetic_lines[0]
        assert line.order_number == "DO-100C"
        assert line.section_suffix == "C"
        assert line.line_id == "synthetic-DO-100C-1"
        assert line.origin == LineOrigin.SYNTHETIC
        assert line.ordered_qty == Decimal("0")
        assert line.category == "Sunflower"
        assert state.entries[line.line_id].selected

    def test_suffix_skips_letters_held_by_synthetic_lines(self, sectioned_group):
        state = start_allocation([sectioned_group])

        state = self.add(state, sectioned_group)
        state = self.add(state, sectioned_group)

        assert [l.order_number for l in state.synthetic_lines] == ["DO-100C", "DO-100D"]

    def test_removed_suffix_is_reused(self, sectioned_group):
        state = start_allocation([sectioned_group])
        state = self.add(state, sectioned_group)
        state = self.add(state, sectioned_group)

        state = apply_event(state, RemoveSyntheticLineEvent(line_id="synthetic-DO-100C-1"))
        state = self.add(state, sectioned_group)

        assert [l.order_number for l in state.synthetic_lines] == ["DO-100D", "DO-100C"]
        assert "synthetic-DO-100C-1" not in state.entries

    def test_unsuffixed_order_starts_at_a(self):
        group = make_group(ProductLineFactory.create(order_number="DO-7"))
        state = start_allocation([group])

        state = self.add(state, group)

        assert state.synthetic_lines[0].order_number == "DO-7A"

    def test_add_to_section_opened_in_session(self, sectioned_group):
        state = start_allocation([sectioned_group])
        state = self.add(state, sectioned_group)

        state = self.add(state, sectioned_group, section_id="DO-100C", category="Palm")

        second = state.synthetic_lines[1]
        assert second.order_number == "DO-100C"
        assert second.section_suffix == "C"
        assert second.category == "Palm"
        assert second.context == state.synthetic_lines[0].context

    def test_persisted_section_cannot_take_new_lines(self, sectioned_group):
        state = start_allocation([sectioned_group])

        with pytest.raises(InvalidAllocationEventError) as exc:
            self.add(state, sectioned_group, section_id="DO-100A")

        assert exc.value.details["section_id"] == "DO-100A"
        assert state.synthetic_lines == []

    def test_unknown_section_raises(self, sectioned_group):
        state = start_allocation([sectioned_group])

        with pytest.raises(InvalidAllocationEventError):
            self.add(state, sectioned_group, section_id="DO-999A")

    def test_unknown_group_raises(self, sectioned_group):
        state = start_allocation([sectioned_group])

        with pytest.raises(OrderGroupNotFoundError):
            apply_event(state, AddSyntheticLineEvent(group_id="nobody::DO-1", product_name="Palm Oil"))

    def test_suffixes_exhausted(self):
        group = make_group(*[
            ProductLineFactory.create(order_number=f"DO-9{letter}") for letter in ascii_uppercase
        ])
        state = start_allocation([group])

        with pytest.raises(SuffixExhaustedError):
            self.add(state, group)

    def test_synthetic_line_does_not_add_budget(self, sectioned_group):
        state = start_allocation([sectioned_group])

        state = self.add(state, sectioned_group, category="Palm")

        summary = summarize_group(state, state.groups[0])
        assert summary["Palm"].budget == Decimal("100")

    def test_synthetic_line_uses_own_category_budget(self, sectioned_group):
        state = start_allocation([sectioned_group])
        state = self.add(state, sectioned_group, product_name="Palm Oil 5L", category="Palm")

        state = set_qty(state, state.synthetic_lines[0].line_id, 30)

        assert state.notices_by_line[state.synthetic_lines[0].line_id] == (
            "Using 30 from Palm's 100 budget"
        )

    def test_synthetic_only_category_borrows(self, sectioned_group):
        state = start_allocation([sectioned_group])
        state = self.add(state, sectioned_group, product_name="Groundnut Oil 1L")
        line_id = state.synthetic_lines[0].line_id

        state = set_qty(state, line_id, 10)

        assert state.notices_by_line[line_id] == (
            "Using 0 from Groundnut budget and borrowing 10 from Soya"
        )


# ===================
# SUMMARY TESTS
# ===================

class TestSummarizeGroup:

    def test_remaining_per_category(self, two_category_group):
        state = start_allocation([two_category_group])
        state = set_qty(state, "a1", 100)
        state = set_qty(state, "a2", 20)

        summary = summarize_group(state, state.groups[0])

        assert summary["Palm"].approved == Decimal("120")
        assert summary["Palm"].remaining == Decimal("-20")
        assert summary["Soya"].remaining == Decimal("50")

    def test_deselected_lines_do_not_count(self, two_category_group):
        state = start_allocation([two_category_group])
        state = set_qty(state, "a1", 60)
        state = set_qty(state, "a2", 30)

        state = apply_event(state, DeselectLineEvent(line_id="a2"))
        summary = summarize_group(state, state.groups[0])

        assert summary["Palm"].approved == Decimal("60")

    def test_synthetic_only_category_is_listed(self, two_category_group):
        state = start_allocation([two_category_group])
        state = apply_event(state, AddSyntheticLineEvent(
            group_id=two_category_group.group_id, product_name="Groundnut Oil 1L",
        ))
        state = set_qty(state, state.synthetic_lines[0].line_id, 10)

        summary = summarize_group(state, state.groups[0])

        assert list(summary) == ["Palm", "Soya", "Groundnut"]
        assert summary["Groundnut"].budget == Decimal("0")
        assert summary["Groundnut"].remaining == Decimal("-10")


# ===================
# CHECKLIST TESTS
# ===================

class TestApprovalChecklist:

    def test_defaults_to_all_approved(self, two_category_group):
        state = start_allocation([two_category_group])

        assert state.checklist.has_rejection is False

    def test_reject_and_approve_again(self, two_category_group):
        state = start_allocation([two_category_group])

        rejected = apply_event(state, SetChecklistItemEvent(item="sku", decision="reject"))
        restored = apply_event(rejected, SetChecklistItemEvent(item="sku", decision="approve"))

        assert rejected.checklist.rejected_items == ["sku"]
        assert state.checklist.sku == "approve"
        assert restored.checklist.has_rejection is False
