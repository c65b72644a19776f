"""Models module exporting all database models."""

from .booking import (
    Booking,
    BookingStatus,
    PaymentStatus,
    ReservationStatus,
    SeatReservation,
)
from .departure import Departure, DepartureStatus
from .idempotency import IdempotencyRecord
from .payment import Payment, PaymentKind
from .vendor_cost import VendorCost, VendorCostStatus

__all__ = [
    # Capacity
    "Departure",
    "DepartureStatus",
    "SeatReservation",
    "ReservationStatus",

    # Booking entities
    "Booking",
    "BookingStatus",
    "PaymentStatus",

    # Ledgers
    "Payment",
    "PaymentKind",
    "VendorCost",
    "VendorCostStatus",

    # Idempotency entity
    "IdempotencyRecord",
]
