"""Departure-related Pydantic schemas."""

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from .allocation import PriceTable
from .common import PaginatedResponse


class DepartureStatus(str, Enum):
    """Departure status enumeration."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CreateDepartureRequest(BaseModel):
    """Request schema for registering a departure."""

    code: str = Field(..., min_length=1, max_length=64, description="Human-readable departure code")
    departure_date: date = Field(..., description="Date of departure")
    return_date: date = Field(..., description="Date of return")
    quota: int = Field(..., ge=1, le=10000, description="Total sellable seats")
    prices: PriceTable = Field(default_factory=PriceTable, description="Default price per occupant")

    @model_validator(mode="after")
    def check_dates(self) -> "CreateDepartureRequest":
        if self.return_date < self.departure_date:
            raise ValueError("return_date must not be before departure_date")
        return self


class GetDepartureRequest(BaseModel):
    """Request schema for getting a departure."""

    departure_id: str = Field(..., description="Departure to retrieve")


class CloseDepartureRequest(BaseModel):
    """Request schema for closing a departure to new reservations."""

    departure_id: str = Field(..., description="Departure to close")


class SearchDeparturesRequest(BaseModel):
    """Request schema for searching departures."""

    date_from: date | None = Field(None, description="Start date filter")
    date_to: date | None = Field(None, description="End date filter")
    available_only: bool = Field(False, description="Only show open departures with free seats")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class Departure(BaseModel):
    """Departure response schema."""

    id: str = Field(..., description="Unique departure ID")
    code: str = Field(..., description="Departure code")
    departure_date: date = Field(..., description="Date of departure")
    return_date: date = Field(..., description="Date of return")
    quota: int = Field(..., ge=0, description="Total sellable seats")
    reserved_seats: int = Field(..., ge=0, description="Seats held by active reservations")
    available_seats: int = Field(..., ge=0, description="quota - reserved_seats")
    status: DepartureStatus = Field(..., description="Departure status")
    prices: PriceTable = Field(..., description="Default price per occupant")

    model_config = {"from_attributes": True}


class SearchDeparturesResponse(PaginatedResponse):
    """Response schema for departure search."""

    items: list[Departure] = Field(..., description="Found departures")
