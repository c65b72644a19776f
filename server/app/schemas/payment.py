"""Payment ledger Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import MAX_AMOUNT


class PaymentKind(str, Enum):
    """Kind of ledger entry."""
    PAYMENT = "PAYMENT"
    CORRECTION = "CORRECTION"


class RecordPaymentRequest(BaseModel):
    """Request schema for recording a customer payment."""

    booking_id: str = Field(..., description="Booking being paid")
    amount: int = Field(..., gt=0, le=MAX_AMOUNT, description="Amount received, in whole currency units")
    method: str | None = Field(None, max_length=64, description="Payment method (transfer, card, cash...)")
    reference: str | None = Field(None, max_length=255, description="External payment reference")


class RecordCorrectionRequest(BaseModel):
    """Request schema for appending a signed correction entry."""

    booking_id: str = Field(..., description="Booking whose ledger is corrected")
    amount: int = Field(
        ...,
        ge=-MAX_AMOUNT,
        le=MAX_AMOUNT,
        description="Signed adjustment; negative reverses an earlier payment"
    )
    reference: str | None = Field(None, max_length=255, description="Reason or reference for the correction")


class ListPaymentsRequest(BaseModel):
    """Request schema for listing a booking's payment entries."""

    booking_id: str = Field(..., description="Booking whose ledger is listed")


class Payment(BaseModel):
    """Payment ledger entry response schema."""

    id: str = Field(..., description="Unique entry ID")
    booking_id: str = Field(..., description="Booking the entry belongs to")
    amount: int = Field(..., description="Signed amount")
    kind: PaymentKind = Field(..., description="PAYMENT or CORRECTION")
    method: str | None = Field(None, description="Payment method")
    reference: str | None = Field(None, description="External reference")
    recorded_at: datetime = Field(..., description="Entry time (ISO 8601)")

    model_config = {"from_attributes": True}


class PaymentReceipt(BaseModel):
    """Result of appending a ledger entry: the entry plus the booking's new totals."""

    payment: Payment = Field(..., description="Appended entry")
    booking_status: str = Field(..., description="Booking status after the entry")
    total_price: int = Field(..., ge=0, description="Booking total")
    paid_amount: int = Field(..., ge=0, description="Sum of all entries")
    outstanding_amount: int = Field(..., ge=0, description="total_price - paid_amount")


class ListPaymentsResponse(BaseModel):
    """Response schema for a booking's payment entries."""

    booking_id: str = Field(..., description="Booking ID")
    items: list[Payment] = Field(..., description="Entries in recording order")
    paid_amount: int = Field(..., ge=0, description="Sum of all entries")
