"""Price calculator: room-typed passenger counts times per-occupant prices."""

from ..core.exceptions import PriceMismatchError
from ..models.departure import Departure
from ..schemas.allocation import ROOM_TYPE_ORDER, PriceLine, PriceTable, RoomAllocationRequest


def price_table_for_departure(departure: Departure) -> PriceTable:
    """Default price table stored on a departure."""
    return PriceTable(
        quad=departure.price_quad,
        triple=departure.price_triple,
        double=departure.price_double,
        single=departure.price_single,
    )


def price_breakdown(request: RoomAllocationRequest, price_table: PriceTable) -> list[PriceLine]:
    """
    Price each room type that has passengers.

    Args:
        request: Passenger counts per room type
        price_table: Price per occupant for each room type

    Returns:
        One line per room type with a non-zero count, in Quad/Triple/Double/Single order

    Raises:
        PriceMismatchError: If a requested room type has no price entry
    """
    missing = [
        room_type.value
        for room_type in ROOM_TYPE_ORDER
        if request.count(room_type) > 0 and price_table.price_for(room_type) is None
    ]
    if missing:
        raise PriceMismatchError(missing_room_types=missing)

    lines = []
    for room_type in ROOM_TYPE_ORDER:
        pax = request.count(room_type)
        if pax == 0:
            continue
        unit_price = price_table.price_for(room_type)
        lines.append(PriceLine(room_type=room_type, pax=pax, unit_price=unit_price, amount=pax * unit_price))
    return lines


def calculate_total_price(request: RoomAllocationRequest, price_table: PriceTable) -> int:
    """Total price in whole currency units. Integer arithmetic only, nothing is rounded."""
    return sum(line.amount for line in price_breakdown(request, price_table))
