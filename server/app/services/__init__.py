"""Service layer package."""

from .allocation import calculate_room_allocation
from .booking_service import BookingService
from .departure_service import DepartureService
from .finance_service import FinanceService, build_departure_pl
from .idempotency_service import IdempotencyService
from .payment_service import PaymentService
from .pricing import calculate_total_price, price_breakdown
from .quota_ledger import QuotaLedger, ReserveResult, ReserveStatus
from .vendor_cost_service import VendorCostService

__all__ = [
    "BookingService",
    "DepartureService",
    "FinanceService",
    "IdempotencyService",
    "PaymentService",
    "QuotaLedger",
    "ReserveResult",
    "ReserveStatus",
    "VendorCostService",
    "build_departure_pl",
    "calculate_room_allocation",
    "calculate_total_price",
    "price_breakdown",
]
