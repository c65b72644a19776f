"""Departure model definition."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, Date, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking, SeatReservation
    from .vendor_cost import VendorCost


class DepartureStatus(str, Enum):
    """Departure status enumeration."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Departure(Base):
    """
    Departure entity representing one scheduled trip with a finite seat quota.

    ``reserved_seats`` is owned by the quota ledger and only changes through
    its reserve and release operations.
    """

    __tablename__ = "departures"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Schedule
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    return_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Capacity
    quota: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[DepartureStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DepartureStatus.OPEN,
        index=True
    )

    # Default price per occupant by room type (whole currency units)
    price_quad: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_triple: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_double: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_single: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

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
        CheckConstraint("quota >= 0", name="ck_departure_quota_non_negative"),
        CheckConstraint("reserved_seats >= 0", name="ck_departure_reserved_non_negative"),
        CheckConstraint("reserved_seats <= quota", name="ck_departure_reserved_lte_quota"),
        CheckConstraint("return_date >= departure_date", name="ck_departure_dates_ordered"),
        CheckConstraint("price_quad IS NULL OR price_quad >= 0", name="ck_departure_price_quad_non_negative"),
        CheckConstraint("price_triple IS NULL OR price_triple >= 0", name="ck_departure_price_triple_non_negative"),
        CheckConstraint("price_double IS NULL OR price_double >= 0", name="ck_departure_price_double_non_negative"),
        CheckConstraint("price_single IS NULL OR price_single >= 0", name="ck_departure_price_single_non_negative"),
    )

    # Relationships
    reservations: Mapped[list["SeatReservation"]] = relationship(
        "SeatReservation",
        back_populates="departure",
        cascade="all, delete-orphan"
    )
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="departure",
        cascade="all, delete-orphan"
    )
    vendor_costs: Mapped[list["VendorCost"]] = relationship(
        "VendorCost",
        back_populates="departure",
        cascade="all, delete-orphan"
    )

    @property
    def available_seats(self) -> int:
        return self.quota - self.reserved_seats

    def __repr__(self) -> str:
        return (
            f"<Departure(id={self.id}, code='{self.code}', "
            f"departure_date={self.departure_date}, reserved={self.reserved_seats}/{self.quota})>"
        )
