"""
Order group API routes.

Pending order lines of a workflow stage, grouped Customer -> Base order ->
Section -> Product line.
"""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.order_group import OrderGroupFilters, OrderGroupsResponse
from models.workflow import WorkflowStage
from services.order_grouping_service import get_order_grouping_service

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=OrderGroupsResponse)
async def list_order_groups(
    stage: WorkflowStage = Query(WorkflowStage.APPROVAL, description="Workflow stage"),
    customer_name: Optional[str] = Query(None, description="Filter by party name"),
    start_date: Optional[str] = Query(None, description="Delivery date from (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Delivery date to (YYYY-MM-DD)"),
    status: Optional[str] = Query(None, pattern="^(on-time|expire)$", description="Delivery status"),
):
    """
    Pending order groups of a workflow stage.

    An unreachable dispatch API yields an empty list, not an error.
    """
    try:
        filters = OrderGroupFilters(
            customer_name=customer_name,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )
        return get_order_grouping_service().get_groups(stage, filters)
    except Exception as e:
        return handle_error(e)


@router.get("/skus", response_model=list[str])
async def list_skus():
    """SKU names for the approver's SKU picker."""
    try:
        return get_order_grouping_service().get_skus()
    except Exception as e:
        return handle_error(e)
