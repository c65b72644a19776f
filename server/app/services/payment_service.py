"""Payment ledger: append-only payments and the cached paid amount they add up to."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import BookingNotPayableError, PaymentExceedsTotalError, ValidationError, parse_uuid
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.payment import Payment, PaymentKind
from ..schemas.payment import ListPaymentsRequest, RecordCorrectionRequest, RecordPaymentRequest
from .booking_service import BookingService, booking_lock

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for payment ledger operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.booking_service = BookingService(db)

    async def record_payment(self, request: RecordPaymentRequest, idempotency_key: str | None = None) -> Payment:
        """
        Append a customer payment to a booking's ledger.

        Appends for one booking are serialized. The new paid amount is the sum
        of every entry, and may not exceed the booking's total. The first
        payment that takes the paid amount above zero confirms a booking that is
        still PENDING_PAYMENT.

        Args:
            request: Payment details
            idempotency_key: Idempotency key for this operation, for logging

        Returns:
            The appended payment entry

        Raises:
            ValidationError: If the amount is not positive
            NotFoundError: If booking not found
            BookingNotPayableError: If the booking is cancelled
            PaymentExceedsTotalError: If the payment would overshoot the total;
                nothing is written
        """
        if request.amount <= 0:
            raise ValidationError(detail="Payment amount must be positive")

        booking_id = parse_uuid(request.booking_id, "booking_id")
        return await self._append(
            booking_id,
            amount=request.amount,
            kind=PaymentKind.PAYMENT,
            method=request.method,
            reference=request.reference,
            idempotency_key=idempotency_key,
        )

    async def record_correction(self, request: RecordCorrectionRequest, idempotency_key: str | None = None) -> Payment:
        """
        Append a signed correction (refund or fix) to a booking's ledger.

        Entries are never edited; a correction is how a mistaken payment is
        reversed. The resulting paid amount must stay within ``[0, total_price]``.
        Corrections never move a booking's status backwards.

        Raises:
            ValidationError: If the amount is zero or would take the paid amount below zero
            NotFoundError: If booking not found
            BookingNotPayableError: If the booking is cancelled
            PaymentExceedsTotalError: If the correction would overshoot the total
        """
        if request.amount == 0:
            raise ValidationError(detail="Correction amount must not be zero")

        booking_id = parse_uuid(request.booking_id, "booking_id")
        return await self._append(
            booking_id,
            amount=request.amount,
            kind=PaymentKind.CORRECTION,
            method=None,
            reference=request.reference,
            idempotency_key=idempotency_key,
        )

    async def _append(
        self,
        booking_id: UUID,
        amount: int,
        kind: PaymentKind,
        method: str | None,
        reference: str | None,
        idempotency_key: str | None,
    ) -> Payment:
        async with booking_lock(booking_id):
            booking = await self.booking_service.get_booking_for_update(booking_id)

            if booking.status == BookingStatus.CANCELLED:
                await self.db.rollback()
                logger.warning(
                    "Payment rejected - booking cancelled",
                    extra={"booking_id": str(booking_id), "amount": amount, "idempotency_key": idempotency_key}
                )
                raise BookingNotPayableError(str(booking_id), BookingStatus.CANCELLED.value)

            current_paid = await self.sum_payments(booking_id)
            total_price = booking.total_price

            if current_paid + amount > total_price:
                await self.db.rollback()
                logger.warning(
                    "Payment rejected - would exceed booking total",
                    extra={
                        "booking_id": str(booking_id),
                        "amount": amount,
                        "paid_amount": current_paid,
                        "total_price": total_price,
                        "idempotency_key": idempotency_key
                    }
                )
                raise PaymentExceedsTotalError(
                    booking_id=str(booking_id),
                    total_price=total_price,
                    paid_amount=current_paid,
                    amount=amount
                )

            if current_paid + amount < 0:
                await self.db.rollback()
                raise ValidationError(
                    detail=(
                        f"Correction of {amount} would take the paid amount of booking "
                        f"{booking_id} below zero (currently {current_paid})"
                    )
                )

            payment = Payment(
                booking_id=booking_id,
                amount=amount,
                kind=kind,
                method=method,
                reference=reference,
                recorded_at=datetime.utcnow(),
            )
            self.db.add(payment)
            await self.db.flush()

            # Recompute from the ledger rather than adding to the cached value
            booking.paid_amount = await self.sum_payments(booking_id)

            confirmed = False
            if current_paid <= 0 < booking.paid_amount:
                confirmed = self.booking_service.confirm_booking(booking)

            await self.db.commit()
            await self.db.refresh(payment)

        metrics_collector.record_payment(kind.value)
        logger.info(
            "Payment recorded",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(booking_id),
                "kind": kind.value,
                "amount": amount,
                "paid_amount": booking.paid_amount,
                "total_price": booking.total_price,
                "booking_confirmed": confirmed,
                "idempotency_key": idempotency_key
            }
        )

        return payment

    async def sum_payments(self, booking_id: UUID) -> int:
        """Sum of every ledger entry for a booking."""
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.booking_id == booking_id)
        return int((await self.db.execute(stmt)).scalar_one())

    async def list_payments(self, request: ListPaymentsRequest) -> tuple[Booking, list[Payment]]:
        """
        A booking and its ledger entries in recording order.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.booking_service.get_booking_by_id_or_raise(parse_uuid(request.booking_id, "booking_id"))
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking.id)
            .order_by(Payment.recorded_at, Payment.id)
        )
        result = await self.db.execute(stmt)
        return booking, list(result.scalars())
