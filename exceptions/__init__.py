"""
Custom exceptions module.

Allocation diagnostics are plain state; these exceptions signal API misuse
and collaborator failures.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Order groups
    OrderGroupNotFoundError,

    # Allocation
    AllocationSessionNotFoundError,
    LineNotFoundError,
    InvalidAllocationEventError,
    SubmissionBlockedError,
    SuffixExhaustedError,

    # Dispatch API
    DispatchApiError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # Order groups
    "OrderGroupNotFoundError",

    # Allocation
    "AllocationSessionNotFoundError",
    "LineNotFoundError",
    "InvalidAllocationEventError",
    "SubmissionBlockedError",
    "SuffixExhaustedError",

    # Dispatch API
    "DispatchApiError",
]
