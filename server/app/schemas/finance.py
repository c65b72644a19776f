"""Financial aggregation Pydantic schemas."""

from pydantic import BaseModel, Field


class DeparturePLRequest(BaseModel):
    """Request schema for a departure profit and loss report."""

    departure_id: str = Field(..., description="Departure to report on")


class DeparturePL(BaseModel):
    """Profit and loss for one departure, derived from bookings and vendor costs."""

    departure_id: str = Field(..., description="Departure ID")
    revenue: int = Field(..., ge=0, description="Sum of total_price over non-cancelled bookings")
    collected: int = Field(..., ge=0, description="Sum of paid_amount over non-cancelled bookings")
    outstanding: int = Field(..., description="revenue - collected")
    cost: int = Field(..., ge=0, description="Sum of vendor costs")
    cost_paid: int = Field(..., ge=0, description="Vendor costs already settled")
    cost_pending: int = Field(..., ge=0, description="Vendor costs still owed")
    profit: int = Field(..., description="revenue - cost")
    margin: float = Field(..., description="profit / revenue, 0.0 when there is no revenue")
    booking_count: int = Field(..., ge=0, description="Non-cancelled bookings")
    pax_count: int = Field(..., ge=0, description="Passengers on non-cancelled bookings")
    quota: int = Field(..., ge=0, description="Departure quota")
    reserved_seats: int = Field(..., ge=0, description="Seats held by active reservations")
