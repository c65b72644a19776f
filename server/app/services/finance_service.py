"""Financial aggregator: per-departure profit and loss, derived on every read."""

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import parse_uuid
from ..models.booking import Booking, BookingStatus
from ..models.departure import Departure
from ..models.vendor_cost import VendorCost, VendorCostStatus
from ..schemas.finance import DeparturePL, DeparturePLRequest
from .departure_service import DepartureService

logger = logging.getLogger(__name__)


def build_departure_pl(
    departure: Departure,
    bookings: Iterable[Booking],
    vendor_costs: Iterable[VendorCost]
) -> DeparturePL:
    """
    Profit and loss for one departure.

    Cancelled bookings contribute neither revenue nor collections. Margin is
    ``profit / revenue`` and 0.0 when there is no revenue.

    Args:
        departure: The departure being reported on
        bookings: Every booking of the departure, cancelled ones included
        vendor_costs: Every vendor cost of the departure

    Returns:
        The derived report
    """
    live = [b for b in bookings if b.status != BookingStatus.CANCELLED]
    costs = list(vendor_costs)

    revenue = sum(b.total_price for b in live)
    collected = sum(b.paid_amount for b in live)
    cost = sum(c.amount for c in costs)
    cost_paid = sum(c.amount for c in costs if c.status == VendorCostStatus.PAID)
    profit = revenue - cost

    return DeparturePL(
        departure_id=str(departure.id),
        revenue=revenue,
        collected=collected,
        outstanding=revenue - collected,
        cost=cost,
        cost_paid=cost_paid,
        cost_pending=cost - cost_paid,
        profit=profit,
        margin=profit / revenue if revenue else 0.0,
        booking_count=len(live),
        pax_count=sum(b.total_pax for b in live),
        quota=departure.quota,
        reserved_seats=departure.reserved_seats,
    )


class FinanceService:
    """Read-only reporting over the booking and vendor cost ledgers. Takes no locks."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departure_service = DepartureService(db)

    async def compute_departure_pl(self, departure_id: UUID) -> DeparturePL:
        """
        Profit and loss of a departure from its latest committed bookings and costs.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.departure_service.get_departure_by_id_or_raise(departure_id)

        bookings = (
            await self.db.execute(
                select(Booking)
                .where(Booking.departure_id == departure_id)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
        vendor_costs = (
            await self.db.execute(
                select(VendorCost)
                .where(VendorCost.departure_id == departure_id)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()

        report = build_departure_pl(departure, bookings, vendor_costs)

        logger.info(
            "Departure P&L computed",
            extra={
                "departure_id": str(departure_id),
                "revenue": report.revenue,
                "cost": report.cost,
                "profit": report.profit,
                "booking_count": report.booking_count
            }
        )

        return report

    async def departure_pl(self, request: DeparturePLRequest) -> DeparturePL:
        """Request-shaped entry point for ``compute_departure_pl``."""
        return await self.compute_departure_pl(parse_uuid(request.departure_id, "departure_id"))
