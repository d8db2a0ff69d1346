"""
Allocation session schemas.

An allocation session holds the approver's in-progress decisions for a set
of base order groups. State changes only through AllocationEvent values
applied by services.allocation_service.apply_event.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import Field

from models.base import BaseSchema
from models.order_group import BaseOrderGroup
from models.order_line import ProductLine
from models.workflow import WorkflowStage


class AllocationEntry(BaseSchema):
    """Approver input for one line. Created lazily on first selection."""

    selected: bool = True
    chosen_sku: Optional[str] = None
    approved_qty: Optional[Decimal] = Field(None, ge=0)
    final_rate: Optional[Decimal] = Field(None, ge=0)
    remark: Optional[str] = None
    sequence: int = Field(
        default=0, ge=0, description="Edit counter value of the last quantity change"
    )


class BorrowDraw(BaseSchema):
    """Quantity drawn from another category's unused budget."""

    category: str
    qty: Decimal = Field(..., ge=0)


class LineDiagnostics(BaseSchema):
    """Derived validation result for one line. Errors and notice never coexist."""

    qty_error: Optional[str] = None
    rate_error: Optional[str] = None
    notice: Optional[str] = None
    own_qty: Decimal = Decimal("0")
    borrowed: list[BorrowDraw] = Field(default_factory=list)
    eligible: bool = False

    @property
    def error(self) -> Optional[str]:
        messages = [m for m in (self.qty_error, self.rate_error) if m]
        return "; ".join(messages) if messages else None


# ===================
# APPROVAL CHECKLIST
# ===================

ChecklistItem = Literal["rate", "sku", "credit", "dispatch", "overall", "confirm"]
ChecklistDecision = Literal["approve", "reject"]


class ApprovalChecklist(BaseSchema):
    """
    Order-level checks answered once per session at the approval stage.

    Any rejected item holds back every write of the session.
    """

    rate: ChecklistDecision = "approve"
    sku: ChecklistDecision = "approve"
    credit: ChecklistDecision = "approve"
    dispatch: ChecklistDecision = "approve"
    overall: ChecklistDecision = "approve"
    confirm: ChecklistDecision = "approve"

    @property
    def rejected_items(self) -> list[str]:
        return [item for item, decision in self.model_dump().items() if decision == "reject"]

    @property
    def has_rejection(self) -> bool:
        return bool(self.rejected_items)


# ===================
# EVENTS
# ===================

class SelectLineEvent(BaseSchema):
    type: Literal["select_line"] = "select_line"
    line_id: str


class DeselectLineEvent(BaseSchema):
    type: Literal["deselect_line"] = "deselect_line"
    line_id: str


class SetApprovedQtyEvent(BaseSchema):
    """Approver typed a quantity. None clears the field."""
    type: Literal["set_approved_qty"] = "set_approved_qty"
    line_id: str
    qty: Optional[Decimal] = Field(None, ge=0)


class SetFinalRateEvent(BaseSchema):
    type: Literal["set_final_rate"] = "set_final_rate"
    line_id: str
    rate: Optional[Decimal] = Field(None, ge=0)


class SetSkuEvent(BaseSchema):
    type: Literal["set_sku"] = "set_sku"
    line_id: str
    sku_name: Optional[str] = None


class SetRemarkEvent(BaseSchema):
    type: Literal["set_remark"] = "set_remark"
    line_id: str
    remark: Optional[str] = None


class SetOverallRemarkEvent(BaseSchema):
    type: Literal["set_overall_remark"] = "set_overall_remark"
    remark: Optional[str] = None


class AddSyntheticLineEvent(BaseSchema):
    """
    Add a product line that does not exist server-side yet.

    Without section_id a new section is opened with the next free suffix.
    """
    type: Literal["add_synthetic_line"] = "add_synthetic_line"
    group_id: str
    product_name: str = Field(..., min_length=1)
    category: Optional[str] = None
    sku_name: Optional[str] = None
    uom: Optional[str] = None
    unit_floor_rate: Decimal = Field(default=Decimal("0"), ge=0)
    section_id: Optional[str] = Field(
        None, description="Order number of a section opened earlier in the session"
    )


class RemoveSyntheticLineEvent(BaseSchema):
    type: Literal["remove_synthetic_line"] = "remove_synthetic_line"
    line_id: str


class SetChecklistItemEvent(BaseSchema):
    """Approve or reject one item of the approval checklist."""
    type: Literal["set_checklist_item"] = "set_checklist_item"
    item: ChecklistItem
    decision: ChecklistDecision


AnyAllocationEvent = Union[
    SelectLineEvent,
    DeselectLineEvent,
    SetApprovedQtyEvent,
    SetFinalRateEvent,
    SetSkuEvent,
    SetRemarkEvent,
    SetOverallRemarkEvent,
    AddSyntheticLineEvent,
    RemoveSyntheticLineEvent,
    SetChecklistItemEvent,
]

AllocationEvent = Annotated[AnyAllocationEvent, Field(discriminator="type")]


# ===================
# STATE
# ===================

class AllocationState(BaseSchema):
    """Complete allocation state for one session."""

    groups: list[BaseOrderGroup] = Field(default_factory=list)
    synthetic_lines: list[ProductLine] = Field(default_factory=list)
    entries: dict[str, AllocationEntry] = Field(default_factory=dict)
    diagnostics: dict[str, LineDiagnostics] = Field(default_factory=dict)
    overall_remark: Optional[str] = None
    checklist: ApprovalChecklist = Field(default_factory=ApprovalChecklist)
    sequence: int = 0
    synthetic_counter: int = 0

    @property
    def selected_line_ids(self) -> list[str]:
        return [line_id for line_id, entry in self.entries.items() if entry.selected]

    @property
    def errors_by_line(self) -> dict[str, str]:
        return {
            line_id: diag.error
            for line_id, diag in self.diagnostics.items()
            if diag.error
        }

    @property
    def notices_by_line(self) -> dict[str, str]:
        return {
            line_id: diag.notice
            for line_id, diag in self.diagnostics.items()
            if diag.notice
        }

    @property
    def blocked_lines(self) -> dict[str, str]:
        """Selected lines that cannot be submitted, with the reason."""
        blocked = {}
        for line_id in self.selected_line_ids:
            diag = self.diagnostics.get(line_id)
            if diag is None or not diag.eligible:
                reason = diag.error if diag and diag.error else None
                blocked[line_id] = reason or "Final rate required"
        return blocked

    @property
    def can_submit(self) -> bool:
        return bool(self.selected_line_ids) and not self.blocked_lines


class CategoryBudgetSummary(BaseSchema):
    """Budget usage of one category in one group."""

    budget: Decimal = Decimal("0")
    approved: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")


class AllocationSnapshot(BaseSchema):
    """API view of an allocation session."""

    session_id: str
    stage: WorkflowStage
    created_at: datetime
    state: AllocationState
    errors_by_line: dict[str, str] = Field(default_factory=dict)
    notices_by_line: dict[str, str] = Field(default_factory=dict)
    budgets_by_group: dict[str, dict[str, CategoryBudgetSummary]] = Field(
        default_factory=dict, description="Group id -> category -> budget usage"
    )
    can_submit: bool = False


class CreateAllocationSessionRequest(BaseSchema):
    """Open an allocation session over some pending order groups."""

    stage: WorkflowStage
    group_ids: list[str] = Field(..., min_length=1)
    select_all: bool = Field(
        default=True, description="Select every line of the chosen groups"
    )
