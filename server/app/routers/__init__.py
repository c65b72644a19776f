"""FastAPI routers package."""

from .allocation import router as allocation_router
from .booking import router as booking_router
from .departure import router as departure_router
from .finance import router as finance_router
from .health import router as health_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .vendor_cost import router as vendor_cost_router

__all__ = [
    "allocation_router",
    "booking_router",
    "departure_router",
    "finance_router",
    "health_router",
    "metrics_router",
    "payment_router",
    "vendor_cost_router",
]
