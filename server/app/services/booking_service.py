"""Booking service: the reservation transaction manager."""

import logging
import secrets
import string
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import (
    ConcurrentModificationError,
    DepartureClosedError,
    InsufficientCapacityError,
    InvalidBookingTransitionError,
    NotFoundError,
    parse_uuid,
)
from ..core.locking import LockTimeout, booking_locks
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, SeatReservation, can_transition
from ..models.departure import DepartureStatus
from ..schemas.allocation import RoomAllocationRequest, RoomAllocationResult
from ..schemas.booking import CancelBookingRequest, CompleteBookingRequest, CreateBookingRequest, GetBookingRequest
from .allocation import calculate_room_allocation
from .departure_service import DepartureService
from .pricing import calculate_total_price, price_table_for_departure
from .quota_ledger import QuotaLedger, ReserveStatus

logger = logging.getLogger(__name__)


@asynccontextmanager
async def booking_lock(booking_id: UUID) -> AsyncIterator[None]:
    """Per-booking exclusion point; a lock timeout surfaces as a retryable conflict."""
    try:
        async with booking_locks.hold(booking_id, timeout=settings.lock_timeout_seconds):
            yield
    except LockTimeout as e:
        raise ConcurrentModificationError(
            resource_type="booking",
            resource_id=str(booking_id),
            attempts=1
        ) from e


def allocation_request_for(booking: Booking) -> RoomAllocationRequest:
    """Rebuild the room allocation request snapshotted on a booking."""
    return RoomAllocationRequest(
        quad=booking.quad_pax,
        triple=booking.triple_pax,
        double=booking.double_pax,
        single=booking.single_pax,
    )


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departure_service = DepartureService(db)
        self.ledger = QuotaLedger(db)

    def _generate_booking_code(self, length: int = 8) -> str:
        """Generate a random booking confirmation code."""
        alphabet = string.ascii_uppercase + string.digits
        return ''.join(secrets.choice(alphabet) for _ in range(length))

    async def create_booking(self, request: CreateBookingRequest, idempotency_key: str | None = None) -> Booking:
        """
        Create a priced, room-typed booking backed by a seat reservation.

        The allocation is validated and priced before the quota ledger is
        touched. Seats are reserved (and committed) first; the booking is then
        persisted in PENDING_PAYMENT. If persisting fails, the reservation is
        released again before the error propagates, so no seats are left held
        without a booking.

        Args:
            request: Booking creation request
            idempotency_key: Idempotency key for this operation, for logging

        Returns:
            Created booking entity

        Raises:
            InvalidAllocationError: If the allocation is negative or empty
            NotFoundError: If departure not found
            PriceMismatchError: If a requested room type has no price
            DepartureClosedError: If the departure is closed
            InsufficientCapacityError: If the party does not fit in the remaining seats
            ConcurrentModificationError: If contention outlasted the retry budget
        """
        allocation = calculate_room_allocation(request.allocation)

        departure_id = parse_uuid(request.departure_id, "departure_id")
        departure = await self.departure_service.get_departure_by_id_or_raise(departure_id)

        price_table = request.price_table or price_table_for_departure(departure)
        total_price = calculate_total_price(request.allocation, price_table)

        if departure.status != DepartureStatus.OPEN:
            logger.warning(
                "Booking creation failed - departure closed",
                extra={"departure_id": request.departure_id, "idempotency_key": idempotency_key}
            )
            metrics_collector.record_reservation_rejected("departure_closed")
            raise DepartureClosedError(request.departure_id)

        result = await self.ledger.try_reserve(departure_id, allocation.total_pax, request.customer_ref)

        if result.status == ReserveStatus.INSUFFICIENT_CAPACITY:
            logger.warning(
                "Booking creation failed - insufficient capacity",
                extra={
                    "departure_id": request.departure_id,
                    "requested_seats": allocation.total_pax,
                    "available_seats": result.available_seats,
                    "idempotency_key": idempotency_key
                }
            )
            raise InsufficientCapacityError(
                departure_id=request.departure_id,
                requested_seats=allocation.total_pax,
                available_seats=result.available_seats
            )

        if result.status == ReserveStatus.CONCURRENT_MODIFICATION:
            raise ConcurrentModificationError(
                resource_type="departure",
                resource_id=request.departure_id,
                attempts=result.attempts
            )

        reservation = result.reservation
        reservation_id, reserved_seats = reservation.id, reservation.seats
        try:
            booking = await self._persist_booking(request, reservation, total_price)
        except Exception as e:
            # Rollback expires loaded instances, so only the captured values are used below
            await self.db.rollback()
            logger.error(
                "Booking persistence failed after seats were reserved - releasing reservation",
                extra={
                    "departure_id": request.departure_id,
                    "reservation_id": str(reservation_id),
                    "seats": reserved_seats,
                    "idempotency_key": idempotency_key,
                    "error": str(e)
                }
            )
            await self._compensate_reservation(reservation_id)
            raise

        metrics_collector.record_booking_created(request.departure_id)
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "departure_id": request.departure_id,
                "reservation_id": str(reservation_id),
                "total_pax": booking.total_pax,
                "total_price": booking.total_price,
                "requires_staff_pairing": allocation.requires_staff_pairing,
                "idempotency_key": idempotency_key
            }
        )

        return booking

    async def _persist_booking(
        self,
        request: CreateBookingRequest,
        reservation: SeatReservation,
        total_price: int
    ) -> Booking:
        booking_code = self._generate_booking_code()
        while await self.get_booking_by_code(booking_code):
            booking_code = self._generate_booking_code()

        allocation = request.allocation
        booking = Booking(
            reservation_id=reservation.id,
            departure_id=reservation.departure_id,
            code=booking_code,
            customer_ref=request.customer_ref,
            quad_pax=allocation.quad,
            triple_pax=allocation.triple,
            double_pax=allocation.double,
            single_pax=allocation.single,
            total_pax=reservation.seats,
            total_price=total_price,
            paid_amount=0,
            status=BookingStatus.PENDING_PAYMENT
        )

        self.db.add(booking)
        await self.db.commit()
        await self.db.refresh(booking)
        return booking

    async def _compensate_reservation(self, reservation_id: UUID) -> None:
        try:
            await self.ledger.release(reservation_id)
        except Exception:
            # The original failure is re-raised by the caller; this one needs an operator
            logger.critical(
                "Compensating release failed - reservation left active without a booking",
                extra={"reservation_id": str(reservation_id)},
                exc_info=True
            )

    async def cancel_booking(self, request: CancelBookingRequest, idempotency_key: str | None = None) -> Booking:
        """
        Cancel a booking and give its seats back.

        Cancelling a CANCELLED or COMPLETED booking is a no-op that returns the
        booking unchanged. The status change and the seat release are committed
        together, and the release is guarded by the reservation record so seats
        come back exactly once even under duplicate requests.

        Args:
            request: Booking cancellation request
            idempotency_key: Idempotency key for this operation, for logging

        Returns:
            Cancelled (or already terminal) booking entity

        Raises:
            NotFoundError: If booking not found
            ConcurrentModificationError: If the booking or departure stayed locked
        """
        booking_id = parse_uuid(request.booking_id, "booking_id")

        async with booking_lock(booking_id):
            booking = await self.get_booking_for_update(booking_id)

            if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
                logger.info(
                    "Booking already terminal - cancellation is a no-op",
                    extra={
                        "booking_id": request.booking_id,
                        "status": booking.status,
                        "idempotency_key": idempotency_key
                    }
                )
                return booking

            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = datetime.utcnow()

            try:
                release = await self.ledger.release(booking.reservation_id)
            except Exception:
                await self.db.rollback()
                raise

            await self.db.refresh(booking)

        metrics_collector.record_booking_cancelled()
        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": request.booking_id,
                "booking_code": booking.code,
                "seats_released": release.seats if release.released else 0,
                "idempotency_key": idempotency_key
            }
        )

        return booking

    async def complete_booking(self, request: CompleteBookingRequest) -> Booking:
        """
        Mark a confirmed booking completed once its departure has taken place.

        Completing an already COMPLETED booking returns it unchanged.

        Raises:
            NotFoundError: If booking not found
            InvalidBookingTransitionError: If the booking is not CONFIRMED
        """
        booking_id = parse_uuid(request.booking_id, "booking_id")

        async with booking_lock(booking_id):
            booking = await self.get_booking_for_update(booking_id)

            if booking.status == BookingStatus.COMPLETED:
                return booking

            if not can_transition(booking.status, BookingStatus.COMPLETED):
                current_status = BookingStatus(booking.status).value
                await self.db.rollback()
                raise InvalidBookingTransitionError(
                    booking_id=request.booking_id,
                    current_status=current_status,
                    target_status=BookingStatus.COMPLETED.value
                )

            booking.status = BookingStatus.COMPLETED
            booking.completed_at = datetime.utcnow()
            await self.db.commit()
            await self.db.refresh(booking)

        logger.info(
            "Booking completed",
            extra={"booking_id": request.booking_id, "booking_code": booking.code}
        )

        return booking

    def confirm_booking(self, booking: Booking) -> bool:
        """
        Move a booking from PENDING_PAYMENT to CONFIRMED in the current transaction.

        Returns:
            True if the status changed, False if there was nothing to do
        """
        if booking.status != BookingStatus.PENDING_PAYMENT:
            return False
        booking.status = BookingStatus.CONFIRMED
        logger.info(
            "Booking confirmed by first payment",
            extra={"booking_id": str(booking.id), "booking_code": booking.code}
        )
        return True

    def allocation_for(self, booking: Booking) -> RoomAllocationResult:
        """Room requirements derived from a booking's allocation snapshot."""
        return calculate_room_allocation(allocation_request_for(booking))

    async def get_booking(self, request: GetBookingRequest) -> Booking:
        """
        Get booking by ID.

        Raises:
            NotFoundError: If booking not found
        """
        return await self.get_booking_by_id_or_raise(parse_uuid(request.booking_id, "booking_id"))

    async def list_bookings_for_departure(self, departure_id: UUID) -> list[Booking]:
        """All bookings of a departure, oldest first."""
        stmt = (
            select(Booking)
            .where(Booking.departure_id == departure_id)
            .order_by(Booking.created_at, Booking.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        """Get booking by ID."""
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def get_booking_for_update(self, booking_id: UUID) -> Booking:
        """
        Load the latest committed state of a booking, row-locked where the database supports it.

        Raises:
            NotFoundError: If booking not found
        """
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = (await self.db.execute(stmt)).scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def get_booking_by_code(self, code: str) -> Booking | None:
        """Get booking by confirmation code."""
        stmt = select(Booking).where(Booking.code == code)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

