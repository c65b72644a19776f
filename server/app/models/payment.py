"""Payment ledger entry model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking


class PaymentKind(str, Enum):
    """Kind of ledger entry."""
    PAYMENT = "PAYMENT"
    CORRECTION = "CORRECTION"


class Payment(Base):
    """
    Append-only payment entry against a booking.

    Rows are never updated. A mistake is fixed by appending a signed
    CORRECTION entry.
    """

    __tablename__ = "payments"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to booking
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Entry details
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[PaymentKind] = mapped_column(String(20), nullable=False, default=PaymentKind.PAYMENT)
    method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("amount != 0", name="ck_payment_amount_nonzero"),
        CheckConstraint("kind != 'PAYMENT' OR amount > 0", name="ck_payment_amount_positive"),
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, "
            f"amount={self.amount}, kind={self.kind})>"
        )
