"""Vendor cost router for the cost-entry intake."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.vendor_cost import CreateVendorCostRequest, MarkVendorCostPaidRequest, VendorCost
from ..services.vendor_cost_service import VendorCostService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/vendor-cost", tags=["vendor-cost"])


def _convert_vendor_cost_to_schema(vendor_cost_model) -> VendorCost:
    """Convert vendor cost model to schema."""
    return VendorCost(
        id=str(vendor_cost_model.id),
        departure_id=str(vendor_cost_model.departure_id),
        vendor_ref=vendor_cost_model.vendor_ref,
        cost_type=vendor_cost_model.cost_type,
        description=vendor_cost_model.description,
        amount=vendor_cost_model.amount,
        status=vendor_cost_model.status,
        paid_at=vendor_cost_model.paid_at
    )


@router.post("/create", response_model=VendorCost)
async def create_vendor_cost(
    request: CreateVendorCostRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Record a cost owed to a vendor for a departure."""
    vendor_cost = await VendorCostService(db).create_vendor_cost(request)
    return JSONResponse(
        status_code=200,
        content=_convert_vendor_cost_to_schema(vendor_cost).model_dump(mode="json")
    )


@router.post("/mark-paid", response_model=VendorCost)
async def mark_vendor_cost_paid(
    request: MarkVendorCostPaidRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Mark a vendor cost as paid."""
    vendor_cost = await VendorCostService(db).mark_paid(request)
    return JSONResponse(
        status_code=200,
        content=_convert_vendor_cost_to_schema(vendor_cost).model_dump(mode="json")
    )
