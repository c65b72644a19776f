"""Room allocation calculator: passenger counts per room type to rooms needed."""

import logging
from typing import Any, Mapping

from ..core.exceptions import InvalidAllocationError
from ..schemas.allocation import (
    ROOM_TYPE_ORDER,
    RoomAllocationRequest,
    RoomAllocationResult,
    RoomRequirement,
    RoomType,
)

logger = logging.getLogger(__name__)


def _validated_counts(request: RoomAllocationRequest | Mapping[str, Any]) -> dict[RoomType, int]:
    if isinstance(request, RoomAllocationRequest):
        raw = {room_type: request.count(room_type) for room_type in ROOM_TYPE_ORDER}
    else:
        unknown = sorted(set(request) - {room_type.value.lower() for room_type in ROOM_TYPE_ORDER})
        if unknown:
            raise InvalidAllocationError(
                detail=f"Unknown room type(s): {', '.join(unknown)}",
                counts=dict(request),
            )
        raw = {room_type: request.get(room_type.value.lower(), 0) for room_type in ROOM_TYPE_ORDER}

    as_dict = {room_type.value.lower(): count for room_type, count in raw.items()}

    for room_type, count in raw.items():
        # bool is an int subclass but never a passenger count
        if isinstance(count, bool) or not isinstance(count, int):
            raise InvalidAllocationError(
                detail=f"{room_type.label} passenger count must be an integer",
                counts=as_dict,
            )
        if count < 0:
            raise InvalidAllocationError(
                detail=f"{room_type.label} passenger count must not be negative (got {count})",
                counts=as_dict,
            )

    if sum(raw.values()) == 0:
        raise InvalidAllocationError(
            detail="At least one passenger is required",
            counts=as_dict,
        )

    return raw


def calculate_room_allocation(request: RoomAllocationRequest | Mapping[str, Any]) -> RoomAllocationResult:
    """
    Work out how many rooms of each type a party needs.

    Each type needs ``ceil(pax / capacity)`` rooms. A double room with an odd
    passenger count leaves one occupant without a roommate from the party;
    that occupant is reported in ``unpaired_count`` for staff to pair and is
    never assigned automatically.

    Args:
        request: Passenger counts per room type, as a request model or a
            plain mapping keyed by ``quad``/``triple``/``double``/``single``

    Returns:
        Requirements for every room type, in Quad/Triple/Double/Single order

    Raises:
        InvalidAllocationError: If a count is negative or not an integer,
            a room type is unknown, or the party is empty
    """
    counts = _validated_counts(request)

    requirements = []
    for room_type in ROOM_TYPE_ORDER:
        pax = counts[room_type]
        capacity = room_type.capacity
        requirements.append(
            RoomRequirement(
                room_type=room_type,
                pax=pax,
                capacity=capacity,
                rooms_needed=-(-pax // capacity),
                unpaired_count=pax % 2 if room_type == RoomType.DOUBLE else 0,
            )
        )

    result = RoomAllocationResult(requirements=requirements)

    logger.debug(
        "Room allocation calculated",
        extra={
            "total_pax": result.total_pax,
            "total_rooms": result.total_rooms,
            "requires_staff_pairing": result.requires_staff_pairing,
        }
    )

    return result
