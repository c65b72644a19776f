"""Booking and SeatReservation model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .departure import Departure
    from .payment import Payment


class ReservationStatus(str, Enum):
    """Seat reservation status enumeration."""
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    DRAFT = "DRAFT"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Derived payment progress of a booking."""
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


TERMINAL_BOOKING_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

ALLOWED_BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.DRAFT: frozenset({BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED}),
    BookingStatus.PENDING_PAYMENT: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def can_transition(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    """Return True if the booking state machine allows ``current -> target``."""
    return BookingStatus(target) in ALLOWED_BOOKING_TRANSITIONS[BookingStatus(current)]


class SeatReservation(Base):
    """
    Seats taken from a departure's quota.

    Every release is tied to exactly one reservation; flipping it from
    ACTIVE to RELEASED is what guarantees seats come back only once.
    """

    __tablename__ = "seat_reservations"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to departure
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Reservation details
    seats: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[ReservationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.ACTIVE,
        index=True
    )
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("seats > 0", name="ck_reservation_seats_positive"),
        CheckConstraint("length(customer_ref) > 0", name="ck_reservation_customer_ref_not_empty"),
    )

    # Relationships
    departure: Mapped["Departure"] = relationship("Departure", back_populates="reservations")
    booking: Mapped["Booking | None"] = relationship(
        "Booking",
        back_populates="reservation",
        uselist=False
    )

    def __repr__(self) -> str:
        return (
            f"<SeatReservation(id={self.id}, departure_id={self.departure_id}, "
            f"seats={self.seats}, status={self.status})>"
        )


class Booking(Base):
    """Booking entity: a priced, room-typed reservation for one customer."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to the seat reservation backing this booking
    reservation_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("seat_reservations.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True
    )

    # Foreign key to departure (denormalized for easier queries)
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Booking details
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    customer_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Room allocation snapshot
    quad_pax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    triple_pax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    double_pax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    single_pax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pax: Mapped[int] = mapped_column(Integer, nullable=False)

    # Money (whole currency units)
    total_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    paid_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING_PAYMENT,
        index=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint(
            "quad_pax >= 0 AND triple_pax >= 0 AND double_pax >= 0 AND single_pax >= 0",
            name="ck_booking_pax_non_negative"
        ),
        CheckConstraint("total_pax > 0", name="ck_booking_total_pax_positive"),
        CheckConstraint(
            "total_pax = quad_pax + triple_pax + double_pax + single_pax",
            name="ck_booking_total_pax_consistency"
        ),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_booking_paid_non_negative"),
        CheckConstraint("paid_amount <= total_price", name="ck_booking_paid_lte_total"),
        CheckConstraint("length(customer_ref) > 0", name="ck_booking_customer_ref_not_empty"),
        CheckConstraint("length(code) > 0", name="ck_booking_code_not_empty"),
    )

    # Relationships
    reservation: Mapped["SeatReservation"] = relationship("SeatReservation", back_populates="booking")
    departure: Mapped["Departure"] = relationship("Departure", back_populates="bookings")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        order_by="Payment.recorded_at"
    )

    @property
    def outstanding_amount(self) -> int:
        return self.total_price - self.paid_amount

    @property
    def payment_status(self) -> PaymentStatus:
        if self.paid_amount <= 0:
            return PaymentStatus.UNPAID
        if self.paid_amount < self.total_price:
            return PaymentStatus.PARTIAL
        return PaymentStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code='{self.code}', reservation_id={self.reservation_id}, "
            f"total_pax={self.total_pax}, status={self.status})>"
        )
