"""
Order grouping service.

Folds flat product lines into Customer -> Base order -> Section -> lines,
and serves the pending groups of a workflow stage.

Algorithm (group_lines):
1. WALK lines left to right
2. CREATE the (customer, base key) bucket on first sight, seeded with that
   line's order context
3. APPEND the line to its section (created on first sight) and to the
   group's flat line list
4. COMPUTE category budgets per group once the fold is complete
"""

from datetime import date, datetime
from typing import Iterable, Optional

import structlog

from config import settings
from exceptions import DispatchApiError, OrderGroupNotFoundError
from integrations.dispatch_api import DispatchGateway, get_dispatch_client
from models.order_group import (
    BaseOrderGroup,
    CustomerGroup,
    OrderGroupFilters,
    OrderGroupsResponse,
    Section,
)
from models.order_line import MISSING, ProductLine
from models.workflow import WorkflowStage
from parsers.record_normalizer import normalize_records
from services.category_budget_service import compute_category_budgets
from utils.order_keys import make_group_id

logger = structlog.get_logger(__name__)


# ===================
# PURE GROUPING
# ===================

def group_lines(lines: Iterable[ProductLine]) -> dict[str, CustomerGroup]:
    """
    Build the customer/base-order/section hierarchy.

    Args:
        lines: Normalized lines in display order

    Returns:
        Customer name -> CustomerGroup, insertion ordered at every level
    """
    customers: dict[str, CustomerGroup] = {}

    for line in lines:
        customer = customers.get(line.customer_name)
        if customer is None:
            customer = CustomerGroup(customer_name=line.customer_name)
            customers[line.customer_name] = customer

        group = customer.orders.get(line.base_order_key)
        if group is None:
            group = BaseOrderGroup(
                group_id=make_group_id(line.customer_name, line.base_order_key),
                customer_name=line.customer_name,
                base_order_key=line.base_order_key,
                context=line.context,
            )
            customer.orders[line.base_order_key] = group

        section = group.sections.get(line.order_number)
        if section is None:
            section = Section(
                section_id=line.order_number,
                suffix=line.section_suffix,
                context=line.context,
            )
            group.sections[line.order_number] = section

        section.lines.append(line)
        group.all_lines.append(line)

    for customer in customers.values():
        for group in customer.orders.values():
            group.category_budgets = compute_category_budgets(group.all_lines)

    return customers


def flatten_groups(customers: dict[str, CustomerGroup]) -> list[BaseOrderGroup]:
    """All base order groups in display order."""
    return [
        group
        for customer in customers.values()
        for group in customer.orders.values()
    ]


def find_group(customers: dict[str, CustomerGroup], group_id: str) -> BaseOrderGroup:
    """
    Look up one group by id.

    Raises:
        OrderGroupNotFoundError: If no group has this id
    """
    for group in flatten_groups(customers):
        if group.group_id == group_id:
            return group
    raise OrderGroupNotFoundError(group_id)


# ===================
# FILTERS
# ===================

def _parse_date(value: Optional[str]) -> Optional[date]:
    """Read the date part of "2024-03-21" or an ISO timestamp."""
    if not value or value == MISSING:
        return None
    try:
        return datetime.fromisoformat(value.strip()[:10]).date()
    except ValueError:
        return None


def filter_lines(
    lines: Iterable[ProductLine],
    filters: Optional[OrderGroupFilters] = None,
    today: Optional[date] = None,
) -> list[ProductLine]:
    """
    Apply the stage-page list filters.

    Date filters use the delivery date, falling back to the party DO date.
    Lines without a readable date are never excluded by date filters.
    """
    lines = list(lines)
    if filters is None:
        return lines

    today = today or date.today()
    start = _parse_date(filters.start_date)
    end = _parse_date(filters.end_date)
    customer_name = filters.customer_name if filters.customer_name not in (None, "", "all") else None

    kept = []
    for line in lines:
        if customer_name and line.customer_name != customer_name:
            continue

        line_date = _parse_date(line.context.delivery_date) or _parse_date(line.context.party_so_date)
        if line_date is not None:
            if start and line_date < start:
                continue
            if end and line_date > end:
                continue
            if filters.status == "expire" and line_date >= today:
                continue
            if filters.status == "on-time" and line_date < today:
                continue

        kept.append(line)

    return kept


# ===================
# SERVICE
# ===================

class OrderGroupingService:
    """Serves pending order groups per workflow stage."""

    def __init__(self, gateway: Optional[DispatchGateway] = None):
        self.gateway = gateway or get_dispatch_client()

    def fetch_lines(self, stage: WorkflowStage) -> list[ProductLine]:
        """
        Fetch and normalize the pending lines of a stage.

        A failed fetch is logged and treated as "no pending data".
        """
        try:
            records = self.gateway.fetch_pending(stage, limit=settings.dispatch_fetch_limit)
        except DispatchApiError as e:
            logger.warning(
                "pending_fetch_failed",
                stage=stage.value,
                error=e.message
            )
            return []

        return normalize_records(records)

    def get_customer_groups(
        self,
        stage: WorkflowStage,
        filters: Optional[OrderGroupFilters] = None,
    ) -> dict[str, CustomerGroup]:
        """Fetch, filter and group pending lines."""
        lines = filter_lines(self.fetch_lines(stage), filters)
        return group_lines(lines)

    def get_groups(
        self,
        stage: WorkflowStage,
        filters: Optional[OrderGroupFilters] = None,
    ) -> OrderGroupsResponse:
        """
        Pending order groups for the stage page.

        Args:
            stage: Workflow stage to read
            filters: Optional list filters

        Returns:
            OrderGroupsResponse with customers in display order
        """
        logger.info(
            "getting_order_groups",
            stage=stage.value,
            filters=filters.model_dump(exclude_none=True) if filters else None
        )

        customers = self.get_customer_groups(stage, filters)
        groups = flatten_groups(customers)

        response = OrderGroupsResponse(
            stage=stage,
            customers=list(customers.values()),
            total_groups=len(groups),
            total_lines=sum(g.line_count for g in groups),
        )

        logger.info(
            "order_groups_retrieved",
            stage=stage.value,
            groups=response.total_groups,
            lines=response.total_lines
        )
        return response

    def get_skus(self) -> list[str]:
        """SKU names for the approver's picker, empty on failure."""
        try:
            return self.gateway.fetch_skus()
        except DispatchApiError as e:
            logger.warning("sku_fetch_failed", error=e.message)
            return []


# Singleton
_order_grouping_service: Optional[OrderGroupingService] = None


def get_order_grouping_service() -> OrderGroupingService:
    """Get the singleton order grouping service instance."""
    global _order_grouping_service
    if _order_grouping_service is None:
        _order_grouping_service = OrderGroupingService()
    return _order_grouping_service
