"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://courtbook.example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    Every problem carries a machine-checkable ``code`` and a ``retryable``
    flag so clients can tell conflicts from not-yet-ready failures.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        code: str,
        detail: Optional[str] = None,
        retryable: bool = False,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            code: Application-specific reason code
            detail: Human-readable explanation specific to this occurrence
            retryable: Whether retrying the same request may succeed
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.code = code
        self.detail = detail
        self.retryable = retryable
        self.type_uri = f"{PROBLEM_BASE_URI}/{code.lower().replace('_', '-')}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
            "code": self.code,
            "retryable": self.retryable,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            code="VALIDATION_ERROR",
            detail=detail,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(self, detail: str = "Authentication credentials are required"):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            code="UNAUTHENTICATED",
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(ProblemDetailsException):
    """Exception when the caller does not own the resource."""

    def __init__(self, detail: str = "You are not allowed to modify this resource"):
        super().__init__(
            status_code=403,
            title="Access Forbidden",
            code="FORBIDDEN",
            detail=detail,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {"resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            code="NOT_FOUND",
            detail=detail,
            extensions=extensions,
        )


# Business logic exceptions

def _cell(court_id: int, start: str, end: Optional[str] = None) -> Dict[str, Any]:
    cell = {"court_id": court_id, "start": start}
    if end:
        cell["end"] = end
    return cell


class SlotAlreadyBookedError(ProblemDetailsException):
    """A requested cell is already covered by a PAID booking."""

    def __init__(
        self,
        booking_date: date,
        court_id: int,
        start: str,
        end: Optional[str] = None,
        payment_captured: bool = False,
        followup_id: Optional[str] = None,
    ):
        span = f"{start}-{end}" if end else start
        detail = f"Slot Court {court_id} • {span} on {booking_date.isoformat()} is already booked."
        extensions: Dict[str, Any] = {
            "date": booking_date.isoformat(),
            "slot": _cell(court_id, start, end),
            "payment_captured": payment_captured,
        }
        if payment_captured:
            detail += " Your payment was received and will be refunded by support."
        if followup_id:
            extensions["followup_id"] = followup_id

        super().__init__(
            status_code=409,
            title="Slot Already Booked",
            code="SLOT_ALREADY_BOOKED",
            detail=detail,
            extensions=extensions,
        )


class SlotHeldByOtherError(ProblemDetailsException):
    """A requested cell is held by a different client."""

    def __init__(
        self,
        booking_date: date,
        court_id: int,
        start: str,
        end: Optional[str] = None,
        payment_captured: bool = False,
        followup_id: Optional[str] = None,
    ):
        span = f"{start}-{end}" if end else start
        detail = f"Slot Court {court_id} • {span} is on hold by another user."
        extensions: Dict[str, Any] = {
            "date": booking_date.isoformat(),
            "slot": _cell(court_id, start, end),
            "payment_captured": payment_captured,
        }
        if payment_captured:
            detail += " Your payment was received; retry once the hold lapses or support will refund it."
        if followup_id:
            extensions["followup_id"] = followup_id

        super().__init__(
            status_code=409,
            title="Slot Held By Another Client",
            code="SLOT_HELD_BY_OTHER",
            detail=detail,
            extensions=extensions,
        )


class OrderAlreadyCancelledError(ProblemDetailsException):
    """The order's booking was cancelled and refunded; it cannot be settled again."""

    def __init__(self, order_id: str):
        super().__init__(
            status_code=409,
            title="Order Already Cancelled",
            code="ORDER_ALREADY_CANCELLED",
            detail="This order was cancelled and refunded and cannot be booked again.",
            extensions={"order_id": order_id},
        )


class PaymentNotConfirmedError(ProblemDetailsException):
    """The gateway has not (yet) reported a successful payment for the order."""

    def __init__(self, order_id: str, reason: Optional[str] = None):
        super().__init__(
            status_code=402,
            title="Payment Not Confirmed",
            code="PAYMENT_NOT_CONFIRMED",
            detail=reason or "Payment not successful yet.",
            retryable=True,
            extensions={"order_id": order_id},
        )


class NoActiveMembershipError(ProblemDetailsException):
    """The member has no PAID membership account."""

    def __init__(self, user_id: str):
        super().__init__(
            status_code=403,
            title="No Active Membership",
            code="NO_ACTIVE_MEMBERSHIP",
            detail="No active membership found.",
            extensions={"user_id": user_id},
        )


class InsufficientCreditError(ProblemDetailsException):
    """The active membership has fewer games left than requested."""

    def __init__(self, remaining: int, requested: int):
        super().__init__(
            status_code=409,
            title="Insufficient Membership Credit",
            code="INSUFFICIENT_CREDIT",
            detail=f"You have only {remaining} membership game(s) left.",
            extensions={"remaining": remaining, "requested": requested},
        )


class InvalidSlotIndexError(ProblemDetailsException):
    """The slot index does not address a slot of the booking."""

    def __init__(self, slot_index: int, slot_count: int):
        super().__init__(
            status_code=400,
            title="Invalid Slot Index",
            code="INVALID_SLOT_INDEX",
            detail=f"Slot index {slot_index} is out of range for a booking with {slot_count} slot(s)",
            extensions={"slot_index": slot_index, "slot_count": slot_count},
        )


class GatewayUnavailableError(ProblemDetailsException):
    """The payment gateway could not complete an order-creation request."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=502,
            title="Payment Gateway Error",
            code="GATEWAY_ERROR",
            detail=detail,
            retryable=True,
        )


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body validation failures as a 422 problem with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "detail": "The request data failed validation",
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "code": "INTERNAL_ERROR",
        "retryable": True,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": _utc_stamp(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
