"""
Custom exception classes for the application.

Budget and rate problems found while allocating are NOT exceptions: they are
reported as line diagnostics. Exceptions here cover misuse of the API
(unknown ids, invalid events) and collaborator failures.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "LINE_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# ORDER GROUP ERRORS
# ===================

class OrderGroupNotFoundError(NotFoundError):
    """Base order group not found in the pending set."""

    def __init__(self, group_id: str):
        super().__init__(
            resource="Order group",
            identifier=group_id,
            code="ORDER_GROUP_NOT_FOUND"
        )


# ===================
# ALLOCATION ERRORS
# ===================

class AllocationSessionNotFoundError(NotFoundError):
    """Allocation session not found (expired, cancelled or submitted)."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Allocation session",
            identifier=session_id,
            code="ALLOCATION_SESSION_NOT_FOUND"
        )


class LineNotFoundError(NotFoundError):
    """Product line not part of the allocation session."""

    def __init__(self, line_id: str):
        super().__init__(
            resource="Product line",
            identifier=line_id,
            code="LINE_NOT_FOUND"
        )


class InvalidAllocationEventError(ValidationError):
    """Event cannot be applied to the current allocation state."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_ALLOCATION_EVENT",
            message=message,
            details=details
        )


class SubmissionBlockedError(ValidationError):
    """Submit requested while selected lines are still invalid."""

    def __init__(self, blocked_lines: dict[str, str]):
        if blocked_lines:
            message = f"{len(blocked_lines)} selected line(s) are not ready for submission"
        else:
            message = "No lines selected"
        super().__init__(
            code="SUBMISSION_BLOCKED",
            message=message,
            details={"lines": blocked_lines}
        )


class SuffixExhaustedError(ConflictError):
    """No single-letter section suffix left for a base order."""

    def __init__(self, base_order_key: str):
        super().__init__(
            code="SECTION_SUFFIX_EXHAUSTED",
            message=f"All section letters are in use for {base_order_key}",
            details={"base_order_key": base_order_key}
        )


# ===================
# DISPATCH API ERRORS
# ===================

class DispatchApiError(ExternalServiceError):
    """Dispatch API request failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            service="dispatch_api",
            message=message,
            details={"upstream_status": status_code, **(details or {})}
        )
