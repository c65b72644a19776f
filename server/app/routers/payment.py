"""Payment router for the booking payment ledger."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..models.booking import BookingStatus
from ..schemas.payment import (
    ListPaymentsRequest,
    ListPaymentsResponse,
    Payment,
    PaymentReceipt,
    RecordCorrectionRequest,
    RecordPaymentRequest,
)
from ..services.payment_service import PaymentService
from .idempotent import handle_idempotent_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
IDEMPOTENCY_KEY_DEPENDENCY = Header(..., alias="Idempotency-Key")


def _convert_payment_to_schema(payment_model) -> Payment:
    """Convert payment model to schema."""
    return Payment(
        id=str(payment_model.id),
        booking_id=str(payment_model.booking_id),
        amount=payment_model.amount,
        kind=payment_model.kind,
        method=payment_model.method,
        reference=payment_model.reference,
        recorded_at=payment_model.recorded_at
    )


async def _receipt(payment_service: PaymentService, payment_model) -> dict:
    booking = await payment_service.booking_service.get_booking_by_id_or_raise(payment_model.booking_id)
    return PaymentReceipt(
        payment=_convert_payment_to_schema(payment_model),
        booking_status=BookingStatus(booking.status).value,
        total_price=booking.total_price,
        paid_amount=booking.paid_amount,
        outstanding_amount=booking.outstanding_amount
    ).model_dump(mode="json")


@router.post("/record", response_model=PaymentReceipt)
async def record_payment(
    request: RecordPaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: str = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Record a customer payment against a booking.

    The first payment confirms a booking awaiting payment. Payments that would
    take the paid amount above the booking total are rejected.
    This operation is idempotent based on the Idempotency-Key header.
    """
    payment_service = PaymentService(db)

    async def operation():
        payment = await payment_service.record_payment(request, idempotency_key)
        return await _receipt(payment_service, payment)

    try:
        return await handle_idempotent_operation(
            operation="payment/record",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment recording",
            extra={
                "booking_id": request.booking_id,
                "amount": request.amount,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/correct", response_model=PaymentReceipt)
async def record_correction(
    request: RecordCorrectionRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: str = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Append a signed correction to a booking's payment ledger.

    This operation is idempotent based on the Idempotency-Key header.
    """
    payment_service = PaymentService(db)

    async def operation():
        payment = await payment_service.record_correction(request, idempotency_key)
        return await _receipt(payment_service, payment)

    return await handle_idempotent_operation(
        operation="payment/correct",
        idempotency_key=idempotency_key,
        request_body=request.model_dump(mode="json"),
        operation_func=operation,
        db=db
    )


@router.post("/list", response_model=ListPaymentsResponse)
async def list_payments(
    request: ListPaymentsRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """List a booking's payment ledger in recording order."""
    booking, payments = await PaymentService(db).list_payments(request)

    response_data = ListPaymentsResponse(
        booking_id=str(booking.id),
        items=[_convert_payment_to_schema(payment) for payment in payments],
        paid_amount=booking.paid_amount
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
