"""Room allocation and pricing Pydantic schemas."""

from enum import Enum

from pydantic import BaseModel, Field

from .common import MAX_AMOUNT


class RoomType(str, Enum):
    """Closed set of room types, each with a fixed occupancy."""
    QUAD = "QUAD"
    TRIPLE = "TRIPLE"
    DOUBLE = "DOUBLE"
    SINGLE = "SINGLE"

    @property
    def capacity(self) -> int:
        return ROOM_CAPACITY[self]

    @property
    def label(self) -> str:
        return self.value.title()


ROOM_CAPACITY: dict[RoomType, int] = {
    RoomType.QUAD: 4,
    RoomType.TRIPLE: 3,
    RoomType.DOUBLE: 2,
    RoomType.SINGLE: 1,
}

# No departure sells more seats than this
MAX_PAX_PER_ROOM_TYPE = 10_000

# Display and iteration order everywhere
ROOM_TYPE_ORDER: tuple[RoomType, ...] = (
    RoomType.QUAD,
    RoomType.TRIPLE,
    RoomType.DOUBLE,
    RoomType.SINGLE,
)


class RoomAllocationRequest(BaseModel):
    """
    Passenger counts per room type requested by the customer.

    Counts must be real integers and only the four room types are accepted.
    Negative and all-zero parties pass the schema and are rejected by the
    allocation calculator.
    """

    quad: int = Field(0, strict=True, le=MAX_PAX_PER_ROOM_TYPE, description="Passengers sharing quad rooms")
    triple: int = Field(0, strict=True, le=MAX_PAX_PER_ROOM_TYPE, description="Passengers sharing triple rooms")
    double: int = Field(0, strict=True, le=MAX_PAX_PER_ROOM_TYPE, description="Passengers sharing double rooms")
    single: int = Field(0, strict=True, le=MAX_PAX_PER_ROOM_TYPE, description="Passengers in single rooms")

    model_config = {"extra": "forbid"}

    def count(self, room_type: RoomType) -> int:
        return getattr(self, room_type.value.lower())

    def counts(self) -> dict[RoomType, int]:
        return {room_type: self.count(room_type) for room_type in ROOM_TYPE_ORDER}

    @property
    def total_pax(self) -> int:
        return self.quad + self.triple + self.double + self.single


class RoomRequirement(BaseModel):
    """Rooms needed for one room type."""

    room_type: RoomType = Field(..., description="Room type")
    pax: int = Field(..., ge=0, description="Passengers assigned to this room type")
    capacity: int = Field(..., ge=1, description="Occupants per room")
    rooms_needed: int = Field(..., ge=0, description="Rooms required (ceil(pax / capacity))")
    unpaired_count: int = Field(
        0,
        ge=0,
        description="Occupants left without a roommate from the customer's party (double rooms only)"
    )

    model_config = {"frozen": True}

    def describe(self) -> str:
        """One-line summary for confirmation displays."""
        rooms = f"{self.rooms_needed} room{'' if self.rooms_needed == 1 else 's'}"
        detail = f"{self.pax} pax"
        if self.unpaired_count:
            detail += f", {self.unpaired_count} awaiting staff pairing"
        return f"{self.room_type.label}: {rooms} ({detail})"


class RoomAllocationResult(BaseModel):
    """Derived room requirements for a whole request, in Quad/Triple/Double/Single order."""

    requirements: list[RoomRequirement] = Field(..., description="One entry per room type")

    model_config = {"frozen": True}

    def for_type(self, room_type: RoomType) -> RoomRequirement:
        for requirement in self.requirements:
            if requirement.room_type == room_type:
                return requirement
        raise KeyError(room_type)

    @property
    def total_pax(self) -> int:
        return sum(r.pax for r in self.requirements)

    @property
    def total_rooms(self) -> int:
        return sum(r.rooms_needed for r in self.requirements)

    @property
    def requires_staff_pairing(self) -> bool:
        return any(r.unpaired_count for r in self.requirements)

    def summary(self) -> list[str]:
        """Ordered display lines, one per room type with passengers."""
        return [r.describe() for r in self.requirements if r.pax > 0]


class PriceTable(BaseModel):
    """Price per occupant for each room type, in whole currency units."""

    quad: int | None = Field(None, ge=0, le=MAX_AMOUNT, description="Price per quad occupant")
    triple: int | None = Field(None, ge=0, le=MAX_AMOUNT, description="Price per triple occupant")
    double: int | None = Field(None, ge=0, le=MAX_AMOUNT, description="Price per double occupant")
    single: int | None = Field(None, ge=0, le=MAX_AMOUNT, description="Price per single occupant")

    def price_for(self, room_type: RoomType) -> int | None:
        return getattr(self, room_type.value.lower())


class PriceLine(BaseModel):
    """Priced line for one room type."""

    room_type: RoomType = Field(..., description="Room type")
    pax: int = Field(..., ge=0, description="Passengers priced")
    unit_price: int = Field(..., ge=0, description="Price per occupant")
    amount: int = Field(..., ge=0, description="pax x unit_price")


class QuoteRequest(BaseModel):
    """Request schema for an allocation and price quote."""

    departure_id: str | None = Field(None, description="Departure whose default price table applies")
    allocation: RoomAllocationRequest = Field(..., description="Passengers per room type")
    price_table: PriceTable | None = Field(None, description="Explicit price table (overrides the departure's)")


class QuoteResponse(BaseModel):
    """Response schema for an allocation and price quote."""

    requirements: list[RoomRequirement] = Field(..., description="Rooms needed per room type")
    summary: list[str] = Field(..., description="Display lines in Quad/Triple/Double/Single order")
    requires_staff_pairing: bool = Field(..., description="True if a double-room occupant needs a roommate")
    total_pax: int = Field(..., ge=1, description="Seats the booking would reserve")
    lines: list[PriceLine] = Field(..., description="Priced lines for room types with passengers")
    total_price: int = Field(..., ge=0, description="Quoted total")
