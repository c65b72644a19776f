"""Vendor cost Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import MAX_AMOUNT


class VendorCostStatus(str, Enum):
    """Vendor cost settlement status."""
    PENDING = "PENDING"
    PAID = "PAID"


class CreateVendorCostRequest(BaseModel):
    """Request schema for recording a vendor cost against a departure."""

    departure_id: str = Field(..., description="Departure the cost belongs to")
    vendor_ref: str = Field(..., min_length=1, max_length=128, description="Vendor reference")
    cost_type: str = Field(..., min_length=1, max_length=64, description="Cost category (hotel, airline, visa...)")
    description: str | None = Field(None, description="Free-form description")
    amount: int = Field(..., ge=0, le=MAX_AMOUNT, description="Amount owed, in whole currency units")


class MarkVendorCostPaidRequest(BaseModel):
    """Request schema for settling a vendor cost."""

    vendor_cost_id: str = Field(..., description="Vendor cost to mark as paid")


class VendorCost(BaseModel):
    """Vendor cost response schema."""

    id: str = Field(..., description="Unique vendor cost ID")
    departure_id: str = Field(..., description="Departure ID")
    vendor_ref: str = Field(..., description="Vendor reference")
    cost_type: str = Field(..., description="Cost category")
    description: str | None = Field(None, description="Description")
    amount: int = Field(..., ge=0, description="Amount owed")
    status: VendorCostStatus = Field(..., description="Settlement status")
    paid_at: datetime | None = Field(None, description="Settlement time (ISO 8601)")

    model_config = {"from_attributes": True}
