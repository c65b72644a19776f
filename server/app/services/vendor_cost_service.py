"""Vendor cost intake service."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError, parse_uuid
from ..models.vendor_cost import VendorCost, VendorCostStatus
from ..schemas.vendor_cost import CreateVendorCostRequest, MarkVendorCostPaidRequest
from .departure_service import DepartureService

logger = logging.getLogger(__name__)


class VendorCostService:
    """Service for recording and settling vendor costs."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departure_service = DepartureService(db)

    async def create_vendor_cost(self, request: CreateVendorCostRequest) -> VendorCost:
        """
        Record a cost owed to a vendor for a departure.

        Args:
            request: Vendor cost details

        Returns:
            Created vendor cost, PENDING until marked paid

        Raises:
            NotFoundError: If departure not found
        """
        departure_id = parse_uuid(request.departure_id, "departure_id")
        await self.departure_service.get_departure_by_id_or_raise(departure_id)

        vendor_cost = VendorCost(
            departure_id=departure_id,
            vendor_ref=request.vendor_ref,
            cost_type=request.cost_type,
            description=request.description,
            amount=request.amount,
            status=VendorCostStatus.PENDING,
        )

        self.db.add(vendor_cost)
        await self.db.commit()
        await self.db.refresh(vendor_cost)

        logger.info(
            "Vendor cost recorded",
            extra={
                "vendor_cost_id": str(vendor_cost.id),
                "departure_id": request.departure_id,
                "vendor_ref": request.vendor_ref,
                "cost_type": request.cost_type,
                "amount": request.amount
            }
        )

        return vendor_cost

    async def mark_paid(self, request: MarkVendorCostPaidRequest) -> VendorCost:
        """
        Settle a vendor cost. Settling an already paid cost is a no-op.

        Raises:
            NotFoundError: If vendor cost not found
        """
        vendor_cost = await self.get_vendor_cost_by_id_or_raise(
            parse_uuid(request.vendor_cost_id, "vendor_cost_id")
        )

        if vendor_cost.status == VendorCostStatus.PAID:
            return vendor_cost

        vendor_cost.status = VendorCostStatus.PAID
        vendor_cost.paid_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(vendor_cost)

        logger.info(
            "Vendor cost marked paid",
            extra={
                "vendor_cost_id": str(vendor_cost.id),
                "departure_id": str(vendor_cost.departure_id),
                "amount": vendor_cost.amount
            }
        )

        return vendor_cost

    async def get_vendor_cost_by_id_or_raise(self, vendor_cost_id: UUID) -> VendorCost:
        """Get vendor cost by ID or raise NotFoundError."""
        stmt = select(VendorCost).where(VendorCost.id == vendor_cost_id)
        vendor_cost = (await self.db.execute(stmt)).scalar_one_or_none()
        if not vendor_cost:
            raise NotFoundError(resource_type="vendor_cost", resource_id=str(vendor_cost_id))
        return vendor_cost
