"""
Error taxonomy for the billing engine.

Every error raised by the billing services derives from BillingError and
carries the HTTP status the API layer should answer with. Callers outside
FastAPI (scripts, schedulers, tests) can rely on the class alone.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import status

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base class for billing errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BillingError):
    """Invalid input: non-positive amount, duplicate invoice, unknown enum value."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=422,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class NotFoundError(BillingError):
    """Referenced invoice, payment, appointment or catalog entry does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND"
        )


class ConflictError(BillingError):
    """
    Concurrent transaction conflict on the same invoice.

    Transient: the whole operation was rolled back and the caller should
    retry with backoff.
    """

    def __init__(
        self,
        message: str = "Invoice is being modified by another operation, please retry",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "CONFLICT"
        )


class ConsistencyViolation(BillingError):
    """
    Fatal internal error: the ledger invariant cannot be maintained.

    Raised when reconciliation cannot find the invoice it is updating or
    when the recomputed balance falls outside [0, total_amount].
    """

    def __init__(
        self,
        message: str = "Billing ledger consistency violation",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
            error_code=error_code or "CONSISTENCY_VIOLATION"
        )
        logger.error(f"Consistency violation: {message} details={self.details}")


def create_error_response(exception: BillingError) -> Dict[str, Any]:
    """Create standardized error response body."""
    from utils.datetime_utils import clinic_now

    response: Dict[str, Any] = {
        "error": exception.__class__.__name__,
        "message": exception.message,
        "error_code": exception.error_code,
        "details": exception.details,
        "timestamp": clinic_now().isoformat(),
    }
    return response
