"""Booking router for booking operations."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CompleteBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
)
from ..services.allocation import calculate_room_allocation
from ..services.booking_service import BookingService, allocation_request_for
from .idempotent import handle_idempotent_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
IDEMPOTENCY_KEY_DEPENDENCY = Header(..., alias="Idempotency-Key")


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema, with its derived room allocation."""
    allocation_request = allocation_request_for(booking_model)
    allocation = calculate_room_allocation(allocation_request)
    return Booking(
        id=str(booking_model.id),
        code=booking_model.code,
        departure_id=str(booking_model.departure_id),
        reservation_id=str(booking_model.reservation_id),
        customer_ref=booking_model.customer_ref,
        allocation=allocation_request,
        rooms=allocation.requirements,
        room_summary=allocation.summary(),
        requires_staff_pairing=allocation.requires_staff_pairing,
        total_pax=booking_model.total_pax,
        total_price=booking_model.total_price,
        paid_amount=booking_model.paid_amount,
        outstanding_amount=booking_model.outstanding_amount,
        payment_status=booking_model.payment_status,
        status=booking_model.status,
        created_at=booking_model.created_at,
        cancelled_at=booking_model.cancelled_at,
        completed_at=booking_model.completed_at
    )


@router.post("/create", response_model=Booking)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: str = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Reserve seats and create a booking in PENDING_PAYMENT.

    This operation is idempotent based on the Idempotency-Key header.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.create_booking(request, idempotency_key)
        return _convert_booking_to_schema(booking).model_dump(mode="json")

    try:
        return await handle_idempotent_operation(
            operation="booking/create",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "departure_id": request.departure_id,
                "customer_ref": request.customer_ref,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: str = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking and release its seats.

    Cancelling an already cancelled or completed booking returns it unchanged.
    This operation is idempotent based on the Idempotency-Key header.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.cancel_booking(request, idempotency_key)
        return _convert_booking_to_schema(booking).model_dump(mode="json")

    try:
        return await handle_idempotent_operation(
            operation="booking/cancel",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={
                "booking_id": request.booking_id,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/complete", response_model=Booking)
async def complete_booking(
    request: CompleteBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Mark a confirmed booking completed after its departure has taken place."""
    booking = await BookingService(db).complete_booking(request)
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get booking details with its room allocation summary.

    This is a read operation and does not require idempotency.
    """
    booking = await BookingService(db).get_booking(request)
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )
