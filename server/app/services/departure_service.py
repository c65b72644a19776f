"""Departure service for business logic operations."""

import logging
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError, parse_uuid
from ..models.departure import Departure, DepartureStatus
from ..schemas.departure import (
    CloseDepartureRequest,
    CreateDepartureRequest,
    GetDepartureRequest,
    SearchDeparturesRequest,
)

logger = logging.getLogger(__name__)


class DepartureService:
    """Service for departure-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_departure(self, request: CreateDepartureRequest) -> Departure:
        """
        Register a departure with its quota and default price table.

        Args:
            request: Departure creation request

        Returns:
            Created departure entity, with no seats reserved

        Raises:
            ConflictError: If a departure with the same code already exists
        """
        if await self.get_departure_by_code(request.code):
            logger.warning(
                "Departure creation failed - duplicate code",
                extra={"code": request.code}
            )
            raise ConflictError(
                detail=f"Departure with code '{request.code}' already exists",
                conflicting_resource={"code": request.code}
            )

        departure = Departure(
            code=request.code,
            departure_date=request.departure_date,
            return_date=request.return_date,
            quota=request.quota,
            reserved_seats=0,
            status=DepartureStatus.OPEN,
            price_quad=request.prices.quad,
            price_triple=request.prices.triple,
            price_double=request.prices.double,
            price_single=request.prices.single,
        )

        self.db.add(departure)
        await self.db.commit()
        await self.db.refresh(departure)

        logger.info(
            "Departure created successfully",
            extra={
                "departure_id": str(departure.id),
                "code": departure.code,
                "departure_date": departure.departure_date.isoformat(),
                "quota": departure.quota
            }
        )

        return departure

    async def close_departure(self, request: CloseDepartureRequest) -> Departure:
        """
        Stop a departure from accepting new reservations.

        Existing bookings keep their seats. Closing an already closed departure
        is a no-op.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.get_departure_by_id_or_raise(parse_uuid(request.departure_id, "departure_id"))

        if departure.status == DepartureStatus.CLOSED:
            return departure

        departure.status = DepartureStatus.CLOSED
        await self.db.commit()
        await self.db.refresh(departure)

        logger.info(
            "Departure closed",
            extra={
                "departure_id": str(departure.id),
                "reserved_seats": departure.reserved_seats,
                "quota": departure.quota
            }
        )

        return departure

    async def get_departure(self, request: GetDepartureRequest) -> Departure:
        """Get a departure by the ID in the request, or raise NotFoundError."""
        return await self.get_departure_by_id_or_raise(parse_uuid(request.departure_id, "departure_id"))

    async def search_departures(self, request: SearchDeparturesRequest) -> tuple[list[Departure], str | None]:
        """
        Search departures based on criteria.

        Args:
            request: Search criteria

        Returns:
            Page of departures and the cursor for the next page (None on the last page)
        """
        stmt = select(Departure)

        # Apply filters
        conditions = []

        if request.date_from:
            conditions.append(Departure.departure_date >= request.date_from)

        if request.date_to:
            conditions.append(Departure.departure_date <= request.date_to)

        if request.available_only:
            conditions.append(Departure.status == DepartureStatus.OPEN)
            conditions.append(Departure.reserved_seats < Departure.quota)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        # Cursor is the last ID of the previous page
        if request.cursor:
            try:
                cursor_id = UUID(request.cursor)
                stmt = stmt.where(Departure.id > cursor_id)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid cursor provided in departure search",
                    extra={"cursor": request.cursor}
                )

        # Fetch one extra row to know whether there is a next page
        stmt = stmt.order_by(Departure.id).limit(request.limit + 1)

        result = await self.db.execute(stmt)
        departures = list(result.scalars())

        has_next_page = len(departures) > request.limit
        if has_next_page:
            departures = departures[:-1]

        next_cursor = str(departures[-1].id) if has_next_page and departures else None

        logger.info(
            "Departure search completed",
            extra={
                "total_found": len(departures),
                "has_next_page": has_next_page,
                "filters": {
                    "date_from": request.date_from.isoformat() if request.date_from else None,
                    "date_to": request.date_to.isoformat() if request.date_to else None,
                    "available_only": request.available_only
                }
            }
        )

        return departures, next_cursor

    async def list_open_departure_ids(self) -> list[UUID]:
        """IDs of every departure still accepting reservations."""
        stmt = select(Departure.id).where(Departure.status == DepartureStatus.OPEN).order_by(Departure.id)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_departure_by_id(self, departure_id: UUID) -> Departure | None:
        """
        Get departure by ID.

        Args:
            departure_id: Departure ID to search for

        Returns:
            Departure if found, None otherwise
        """
        stmt = select(Departure).where(Departure.id == departure_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_departure_by_code(self, code: str) -> Departure | None:
        """Get departure by its code."""
        stmt = select(Departure).where(Departure.code == code)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_departure_by_id_or_raise(self, departure_id: UUID) -> Departure:
        """
        Get departure by ID or raise NotFoundError.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.get_departure_by_id(departure_id)
        if not departure:
            logger.warning(
                "Departure not found",
                extra={"departure_id": str(departure_id)}
            )
            raise NotFoundError(
                resource_type="departure",
                resource_id=str(departure_id)
            )
        return departure
