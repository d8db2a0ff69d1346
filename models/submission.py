"""
Submission schemas.

Field names follow the dispatch API wire format (snake_case, numbers as
JSON numbers).
"""

from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.workflow import WorkflowStage


class SubmissionPayload(BaseSchema):
    """Write payload for one eligible line."""

    sku_name: Optional[str] = None
    product_name: str
    approval_qty: Optional[float] = None
    rate_per_unit: float
    final_rate: float
    rate_floor: float
    remark: Optional[str] = None


class ApprovalChecklistPayload(BaseSchema):
    """Approval-stage checklist columns sent with every approval write."""

    rate_is_rightly_as_per_current_market_rate: bool
    we_are_dealing_in_ordered_sku: bool
    party_credit_status: str
    dispatch_date_confirmed: bool
    overall_status_of_order: str
    order_confirmation_with_customer: bool


class OrderProductPayload(BaseSchema):
    """Product entry of an order-creation payload."""

    product_name: str
    oil_type: Optional[str] = None
    uom: Optional[str] = None
    sku_name: Optional[str] = None
    order_quantity: Optional[float] = None
    approval_qty: Optional[float] = None
    rate_of_material: Optional[float] = None


class OrderCreationPayload(BaseSchema):
    """Creates one new order section carrying all of its synthetic lines."""

    order_no: str
    customer_name: str
    order_type: Optional[str] = None
    customer_type: Optional[str] = None
    order_type_delivery_purpose: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    delivery_date: Optional[str] = None
    party_so_date: Optional[str] = None
    customer_contact_person_name: Optional[str] = None
    customer_contact_person_whatsapp_no: Optional[str] = None
    customer_address: Optional[str] = None
    payment_terms: Optional[str] = None
    advance_payment_to_be_taken: bool = False
    advance_amount: Optional[float] = None
    is_order_through_broker: bool = False
    broker_name: Optional[str] = None
    type_of_transporting: Optional[str] = None
    remark: Optional[str] = None
    products: list[OrderProductPayload] = Field(default_factory=list)


class SubmissionPlan(BaseSchema):
    """Everything needed to submit one line."""

    line_id: str
    record_id: Optional[str] = None
    order_number: str
    payload: SubmissionPayload
    checklist: Optional[ApprovalChecklistPayload] = None
    order_product_index: Optional[int] = Field(
        None, ge=0, description="Position in the products of the section created for this line"
    )

    @property
    def creates_order(self) -> bool:
        return self.order_product_index is not None


class SkippedLine(BaseSchema):
    """Selected line left out of a batch, with the reason."""

    line_id: str
    reason: str


class SubmissionBatch(BaseSchema):
    """Assembled submission for one session."""

    stage: WorkflowStage
    plans: list[SubmissionPlan] = Field(default_factory=list)
    skipped: list[SkippedLine] = Field(default_factory=list)
    new_sections: dict[str, OrderCreationPayload] = Field(
        default_factory=dict, description="Order number -> creation payload"
    )


class LineSubmissionResult(BaseSchema):
    """Outcome of one line's write call."""

    line_id: str
    order_number: str
    success: bool
    record_id: Optional[str] = None
    error: Optional[str] = None


class BatchSubmissionReport(BaseSchema):
    """Per-line outcome of a batch. Successful lines are never rolled back."""

    stage: WorkflowStage
    succeeded: list[LineSubmissionResult] = Field(default_factory=list)
    failed: list[LineSubmissionResult] = Field(default_factory=list)
    skipped: list[SkippedLine] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        parts = []
        if self.succeeded:
            parts.append(f"{len(self.succeeded)} product(s) submitted successfully")
        if self.failed:
            parts.append(f"{len(self.failed)} failed, check details")
        if not parts:
            return "Nothing submitted"
        return ". ".join(parts)
