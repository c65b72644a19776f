"""Allocation router: room requirements and price quotes for a party."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ValidationError, parse_uuid
from ..schemas.allocation import QuoteRequest, QuoteResponse
from ..services.allocation import calculate_room_allocation
from ..services.departure_service import DepartureService
from ..services.pricing import price_breakdown, price_table_for_departure

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/allocation", tags=["allocation"])


@router.post("/quote", response_model=QuoteResponse)
async def quote(
    request: QuoteRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Work out rooms needed and the price of a party without reserving anything.

    Prices come from ``price_table`` when given, otherwise from the departure's
    default table.
    """
    allocation = calculate_room_allocation(request.allocation)

    price_table = request.price_table
    if price_table is None:
        if request.departure_id is None:
            raise ValidationError(detail="Either departure_id or price_table is required")
        departure = await DepartureService(db).get_departure_by_id_or_raise(
            parse_uuid(request.departure_id, "departure_id")
        )
        price_table = price_table_for_departure(departure)

    lines = price_breakdown(request.allocation, price_table)

    response_data = QuoteResponse(
        requirements=allocation.requirements,
        summary=allocation.summary(),
        requires_staff_pairing=allocation.requires_staff_pairing,
        total_pax=allocation.total_pax,
        lines=lines,
        total_price=sum(line.amount for line in lines)
    )

    logger.info(
        "Allocation quoted",
        extra={
            "departure_id": request.departure_id,
            "total_pax": response_data.total_pax,
            "total_price": response_data.total_price,
            "requires_staff_pairing": response_data.requires_staff_pairing
        }
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
