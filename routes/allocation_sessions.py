"""
Allocation session API routes.

Open a session over pending order groups, apply allocation events one at a
time, then submit or cancel.
"""

from typing import Annotated

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.allocation import (
    AnyAllocationEvent,
    AllocationSnapshot,
    CreateAllocationSessionRequest,
)
from services.allocation_session_service import get_allocation_session_service

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

@router.post("", response_model=AllocationSnapshot, status_code=201)
async def create_session(data: CreateAllocationSessionRequest):
    """
    Open an allocation session.

    Raises:
        404: A group id is not pending at this stage
    """
    try:
        return get_allocation_session_service().create_session(data)
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=AllocationSnapshot)
async def get_session(session_id: str):
    """
    Current allocation state with errors and notices per line.

    Raises:
        404: Session not found
    """
    try:
        return get_allocation_session_service().get_snapshot(session_id)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/events", response_model=AllocationSnapshot)
async def apply_event(
    session_id: str,
    event: Annotated[AnyAllocationEvent, Body(discriminator="type")],
):
    """
    Apply one allocation event (select, set quantity, set rate, add line...).

    Budget and rate problems come back as line errors, not HTTP errors.

    Raises:
        404: Session, line or group not found
        409: No section letter left
        422: Event not applicable
    """
    try:
        return get_allocation_session_service().apply(session_id, event)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/submit")
async def submit_session(session_id: str):
    """
    Submit all selected lines and close the session.

    Returns the per-line outcome; failed lines do not undo successful ones.

    Raises:
        404: Session not found
        422: Some selected line is not ready
    """
    try:
        report = get_allocation_session_service().submit(session_id)
        return {
            **report.model_dump(mode="json"),
            "summary": report.summary,
        }
    except Exception as e:
        return handle_error(e)


@router.delete("/{session_id}", status_code=204)
async def cancel_session(session_id: str):
    """
    Discard a session without submitting.

    Raises:
        404: Session not found
    """
    try:
        get_allocation_session_service().cancel(session_id)
        return None
    except Exception as e:
        return handle_error(e)
