"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.workflow import WorkflowStage
from models.order_line import (
    MISSING,
    Category,
    LineOrigin,
    OrderContext,
    ProductLine,
)
from models.order_group import (
    Section,
    BaseOrderGroup,
    CustomerGroup,
    OrderGroupFilters,
    OrderGroupsResponse,
)
from models.allocation import (
    AllocationEntry,
    BorrowDraw,
    CategoryBudgetSummary,
    LineDiagnostics,
    AllocationEvent,
    AnyAllocationEvent,
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
    ApprovalChecklist,
    AllocationState,
    AllocationSnapshot,
    CreateAllocationSessionRequest,
)
from models.submission import (
    SubmissionPayload,
    ApprovalChecklistPayload,
    OrderProductPayload,
    OrderCreationPayload,
    SubmissionPlan,
    SkippedLine,
    SubmissionBatch,
    LineSubmissionResult,
    BatchSubmissionReport,
)

__all__ = [
    # Base
    "BaseSchema",
    "WorkflowStage",

    # Lines
    "MISSING",
    "Category",
    "LineOrigin",
    "OrderContext",
    "ProductLine",

    # Groups
    "Section",
    "BaseOrderGroup",
    "CustomerGroup",
    "OrderGroupFilters",
    "OrderGroupsResponse",

    # Allocation
    "AllocationEntry",
    "BorrowDraw",
    "CategoryBudgetSummary",
    "LineDiagnostics",
    "AllocationEvent",
    "AnyAllocationEvent",
    "SelectLineEvent",
    "DeselectLineEvent",
    "SetApprovedQtyEvent",
    "SetFinalRateEvent",
    "SetSkuEvent",
    "SetRemarkEvent",
    "SetOverallRemarkEvent",
    "AddSyntheticLineEvent",
    "RemoveSyntheticLineEvent",
    "SetChecklistItemEvent",
    "ApprovalChecklist",
    "AllocationState",
    "AllocationSnapshot",
    "CreateAllocationSessionRequest",

    # Submission
    "SubmissionPayload",
    "ApprovalChecklistPayload",
    "OrderProductPayload",
    "OrderCreationPayload",
    "SubmissionPlan",
    "SkippedLine",
    "SubmissionBatch",
    "LineSubmissionResult",
    "BatchSubmissionReport",
]
