"""Departure router for departure management operations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.departure import (
    CloseDepartureRequest,
    CreateDepartureRequest,
    Departure,
    GetDepartureRequest,
    SearchDeparturesRequest,
    SearchDeparturesResponse,
)
from ..services.departure_service import DepartureService
from ..services.pricing import price_table_for_departure

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/departure", tags=["departure"])

DB_DEPENDENCY = Depends(get_db)


def _convert_departure_to_schema(departure_model) -> Departure:
    """Convert departure model to schema."""
    return Departure(
        id=str(departure_model.id),
        code=departure_model.code,
        departure_date=departure_model.departure_date,
        return_date=departure_model.return_date,
        quota=departure_model.quota,
        reserved_seats=departure_model.reserved_seats,
        available_seats=departure_model.available_seats,
        status=departure_model.status,
        prices=price_table_for_departure(departure_model)
    )


@router.post("/create", response_model=Departure)
async def create_departure(
    request: CreateDepartureRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Register a departure with its seat quota and default price table.

    Departure codes are unique; registering the same code twice is a conflict.
    """
    departure = await DepartureService(db).create_departure(request)
    return JSONResponse(
        status_code=200,
        content=_convert_departure_to_schema(departure).model_dump(mode="json")
    )


@router.post("/get", response_model=Departure)
async def get_departure(
    request: GetDepartureRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get a departure with its current availability."""
    departure = await DepartureService(db).get_departure(request)
    return JSONResponse(
        status_code=200,
        content=_convert_departure_to_schema(departure).model_dump(mode="json")
    )


@router.post("/search", response_model=SearchDeparturesResponse)
async def search_departures(
    request: SearchDeparturesRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Search departures based on criteria.

    Supports filtering by date range and availability.
    Uses cursor-based pagination.
    """
    departures, next_cursor = await DepartureService(db).search_departures(request)

    response_data = SearchDeparturesResponse(
        items=[_convert_departure_to_schema(departure) for departure in departures],
        next_cursor=next_cursor
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/close", response_model=Departure)
async def close_departure(
    request: CloseDepartureRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Close a departure to new reservations.

    Existing bookings keep their seats and can still be cancelled.
    """
    departure = await DepartureService(db).close_departure(request)
    return JSONResponse(
        status_code=200,
        content=_convert_departure_to_schema(departure).model_dump(mode="json")
    )
