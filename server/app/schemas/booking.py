"""Booking-related Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .allocation import PriceTable, RoomAllocationRequest, RoomRequirement


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Derived payment progress."""
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    departure_id: str = Field(..., description="Departure to reserve seats on")
    customer_ref: str = Field(..., min_length=1, max_length=128, description="Customer reference")
    allocation: RoomAllocationRequest = Field(..., description="Passengers per room type")
    price_table: PriceTable | None = Field(
        None,
        description="Price per occupant; defaults to the departure's price table"
    )


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")


class CompleteBookingRequest(BaseModel):
    """Request schema for marking a booking completed after the trip."""

    booking_id: str = Field(..., description="Booking to complete")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    code: str = Field(..., description="Booking confirmation code")
    departure_id: str = Field(..., description="Associated departure ID")
    reservation_id: str = Field(..., description="Seat reservation backing the booking")
    customer_ref: str = Field(..., description="Customer reference")
    allocation: RoomAllocationRequest = Field(..., description="Passengers per room type")
    rooms: list[RoomRequirement] = Field(..., description="Rooms needed per room type")
    room_summary: list[str] = Field(..., description="Display lines in Quad/Triple/Double/Single order")
    requires_staff_pairing: bool = Field(..., description="True if a double-room occupant needs a roommate")
    total_pax: int = Field(..., ge=1, description="Seats reserved")
    total_price: int = Field(..., ge=0, description="Total price, fixed at creation")
    paid_amount: int = Field(..., ge=0, description="Sum of recorded payments")
    outstanding_amount: int = Field(..., ge=0, description="total_price - paid_amount")
    payment_status: PaymentStatus = Field(..., description="Derived payment progress")
    status: BookingStatus = Field(..., description="Booking status")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    cancelled_at: datetime | None = Field(None, description="Cancellation time (ISO 8601)")
    completed_at: datetime | None = Field(None, description="Completion time (ISO 8601)")

    model_config = {"from_attributes": True}
