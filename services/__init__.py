"""
Business logic services.

Each service handles one domain area.
"""

from services.category_budget_service import compute_category_budgets, lines_by_category
from services.order_grouping_service import (
    OrderGroupingService,
    get_order_grouping_service,
    group_lines,
    flatten_groups,
    find_group,
    filter_lines,
)
from services.allocation_service import (
    start_allocation,
    apply_event,
    evaluate_state,
    evaluate_group,
    lines_for_group,
    summarize_group,
)
from services.submission_service import assemble_submissions, submit_batch
from services.allocation_session_service import (
    AllocationSessionService,
    get_allocation_session_service,
)

__all__ = [
    "compute_category_budgets",
    "lines_by_category",
    "OrderGroupingService",
    "get_order_grouping_service",
    "group_lines",
    "flatten_groups",
    "find_group",
    "filter_lines",
    "start_allocation",
    "apply_event",
    "evaluate_state",
    "evaluate_group",
    "lines_for_group",
    "summarize_group",
    "assemble_submissions",
    "submit_batch",
    "AllocationSessionService",
    "get_allocation_session_service",
]
