"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, if any."""
        return self.problem_details.get("code")

    @property
    def retryable(self) -> bool:
        """Whether the caller may retry the operation from scratch."""
        return bool(self.problem_details.get("retryable", False))


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


def parse_uuid(value: str, field_name: str) -> uuid.UUID:
    """Parse an identifier from a request, raising a 400 instead of a bare ValueError."""
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(
            detail=f"{field_name} must be a valid UUID",
            errors={field_name: str(value)},
        ) from e


# Business logic exceptions

class InvalidAllocationError(ProblemDetailsException):
    """Room allocation request is malformed or empty."""

    def __init__(self, detail: str, counts: Optional[Dict[str, Any]] = None):
        extensions: Dict[str, Any] = {
            "code": "INVALID_ALLOCATION",
            "retryable": False,
        }
        if counts is not None:
            extensions["counts"] = counts

        super().__init__(
            status_code=400,
            title="Invalid Room Allocation",
            detail=detail,
            type_uri="https://example.com/problems/invalid-allocation",
            extensions=extensions,
        )


class PriceMismatchError(ProblemDetailsException):
    """A requested room type has no entry in the price table."""

    def __init__(self, missing_room_types: list[str]):
        super().__init__(
            status_code=422,
            title="Price Mismatch",
            detail=f"No price configured for room type(s): {', '.join(missing_room_types)}",
            type_uri="https://example.com/problems/price-mismatch",
            extensions={
                "code": "PRICE_MISMATCH",
                "retryable": False,
                "missing_room_types": missing_room_types,
            },
        )


class InsufficientCapacityError(ProblemDetailsException):
    """Requested passengers exceed the seats left on the departure."""

    def __init__(self, departure_id: str, requested_seats: int, available_seats: int):
        super().__init__(
            status_code=409,
            title="Insufficient Capacity",
            detail=(
                f"Departure {departure_id} has insufficient capacity. "
                f"Requested: {requested_seats}, Available: {available_seats}"
            ),
            type_uri="https://example.com/problems/insufficient-capacity",
            extensions={
                "code": "INSUFFICIENT_CAPACITY",
                "retryable": False,
                "departure_id": departure_id,
                "requested_seats": requested_seats,
                "available_seats": available_seats,
            },
        )


class ConcurrentModificationError(ProblemDetailsException):
    """Contention prevented an atomic ledger update within the retry budget."""

    def __init__(self, resource_type: str, resource_id: str, attempts: int):
        super().__init__(
            status_code=409,
            title="Concurrent Modification",
            detail=(
                f"Could not update {resource_type} {resource_id} after {attempts} attempts "
                f"due to concurrent requests. Retry the request."
            ),
            type_uri="https://example.com/problems/concurrent-modification",
            extensions={
                "code": "CONCURRENT_MODIFICATION",
                "retryable": True,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "attempts": attempts,
            },
        )


class PaymentExceedsTotalError(ProblemDetailsException):
    """Payment would push the paid amount past the booking total."""

    def __init__(self, booking_id: str, total_price: int, paid_amount: int, amount: int):
        super().__init__(
            status_code=422,
            title="Payment Exceeds Total",
            detail=(
                f"Payment of {amount} on booking {booking_id} would bring the paid amount to "
                f"{paid_amount + amount}, above the total price {total_price}"
            ),
            type_uri="https://example.com/problems/payment-exceeds-total",
            extensions={
                "code": "PAYMENT_EXCEEDS_TOTAL",
                "retryable": False,
                "booking_id": booking_id,
                "total_price": total_price,
                "paid_amount": paid_amount,
                "outstanding_amount": total_price - paid_amount,
            },
        )


class BookingNotPayableError(ConflictError):
    """Payments cannot be recorded against this booking."""

    def __init__(self, booking_id: str, status: str):
        super().__init__(
            detail=f"Booking {booking_id} does not accept payments (status: {status})",
            conflicting_resource={"booking_id": booking_id, "status": status},
        )
        self.problem_details.update({
            "code": "BOOKING_NOT_PAYABLE",
            "retryable": False,
        })


class InvalidBookingTransitionError(ConflictError):
    """Requested booking status change is not allowed by the state machine."""

    def __init__(self, booking_id: str, current_status: str, target_status: str):
        super().__init__(
            detail=f"Booking {booking_id} cannot move from {current_status} to {target_status}",
            conflicting_resource={
                "booking_id": booking_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
        })


class DepartureClosedError(ConflictError):
    """Departure no longer accepts reservations."""

    def __init__(self, departure_id: str):
        super().__init__(
            detail=f"Departure {departure_id} is closed for reservations",
            conflicting_resource={"departure_id": departure_id},
        )
        self.problem_details.update({
            "code": "DEPARTURE_CLOSED",
            "retryable": False,
        })


class InvariantViolationError(ProblemDetailsException):
    """
    Ledger state was observed outside its invariants.

    Signals a defect or data corruption, never a business condition.
    The offending state is left untouched for operator investigation.
    """

    def __init__(self, departure_id: str, detail: str, observed: Optional[Dict[str, Any]] = None):
        error_id = str(uuid.uuid4())
        super().__init__(
            status_code=500,
            title="Ledger Invariant Violation",
            detail=detail,
            type_uri="https://example.com/problems/invariant-violation",
            extensions={
                "code": "INVARIANT_VIOLATION",
                "retryable": False,
                "departure_id": departure_id,
                "observed": observed or {},
                "error_id": error_id,
                "timestamp": datetime.utcnow().isoformat() + "Z",
            },
        )


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

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Exception handler for request bodies that fail schema validation.

    Returns:
        JSONResponse: Problem Details with one violation per invalid field
    """
    violations = [
        {
            "path": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/request-validation-error",
            "title": "Request Validation Error",
            "status": 422,
            "detail": "The request body failed validation",
            "instance": str(request.url),
            "code": "REQUEST_VALIDATION_ERROR",
            "retryable": False,
            "violations": violations,
        },
    )
