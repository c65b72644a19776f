"""Vendor cost model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .departure import Departure


class VendorCostStatus(str, Enum):
    """Vendor cost settlement status."""
    PENDING = "PENDING"
    PAID = "PAID"


class VendorCost(Base):
    """Departure-scoped cost owed to a vendor (hotel, airline, visa agent...)."""

    __tablename__ = "vendor_costs"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to departure
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Cost details
    vendor_ref: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    cost_type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[VendorCostStatus] = mapped_column(
        String(20),
        nullable=False,
        default=VendorCostStatus.PENDING,
        index=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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
        CheckConstraint("amount >= 0", name="ck_vendor_cost_amount_non_negative"),
        CheckConstraint("length(vendor_ref) > 0", name="ck_vendor_cost_vendor_ref_not_empty"),
        CheckConstraint("length(cost_type) > 0", name="ck_vendor_cost_type_not_empty"),
    )

    # Relationships
    departure: Mapped["Departure"] = relationship("Departure", back_populates="vendor_costs")

    def __repr__(self) -> str:
        return (
            f"<VendorCost(id={self.id}, departure_id={self.departure_id}, "
            f"cost_type='{self.cost_type}', amount={self.amount}, status={self.status})>"
        )
