"""
Hierarchical order group schemas.

Customer -> Base order -> Section -> Product lines. All maps keep
first-seen insertion order so display order follows input order.
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.order_line import OrderContext, ProductLine
from models.workflow import WorkflowStage


class Section(BaseSchema):
    """All lines sharing one exact (suffixed) order number."""

    section_id: str = Field(..., description="Full order number, e.g. DO-100A")
    suffix: str = Field(default="", description="Section letter")
    context: OrderContext = Field(default_factory=OrderContext)
    lines: list[ProductLine] = Field(default_factory=list)


class BaseOrderGroup(BaseSchema):
    """All sections of one commercial order for one customer."""

    group_id: str = Field(..., description="Stable id: '<customer>::<base key>'")
    customer_name: str
    base_order_key: str
    context: OrderContext = Field(default_factory=OrderContext)
    sections: dict[str, Section] = Field(default_factory=dict)
    all_lines: list[ProductLine] = Field(default_factory=list)
    category_budgets: dict[str, Decimal] = Field(
        default_factory=dict, description="Ordered qty per category (persisted lines only)"
    )

    @property
    def line_count(self) -> int:
        return len(self.all_lines)

    @property
    def section_count(self) -> int:
        return len(self.sections)


class CustomerGroup(BaseSchema):
    """All base orders of one customer."""

    customer_name: str
    orders: dict[str, BaseOrderGroup] = Field(default_factory=dict)

    @property
    def line_count(self) -> int:
        return sum(group.line_count for group in self.orders.values())


class OrderGroupFilters(BaseSchema):
    """List filters offered on every stage page."""

    customer_name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[str] = Field(
        None, pattern="^(on-time|expire)$", description="Delivery status filter"
    )


class OrderGroupsResponse(BaseSchema):
    """Pending order groups for one workflow stage."""

    stage: WorkflowStage
    customers: list[CustomerGroup] = Field(default_factory=list)
    total_groups: int = 0
    total_lines: int = 0
