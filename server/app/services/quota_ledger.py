"""Quota ledger: the only writer of a departure's reserved seat counter."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import is_postgresql
from ..core.exceptions import (
    ConcurrentModificationError,
    DepartureClosedError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from ..core.locking import LockTimeout, departure_locks
from ..core.observability import metrics_collector
from ..models.booking import ReservationStatus, SeatReservation
from ..models.departure import Departure, DepartureStatus

logger = logging.getLogger(__name__)


class ReserveStatus(str, Enum):
    """Outcome of a reservation attempt."""
    RESERVED = "RESERVED"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"


@dataclass(frozen=True)
class ReserveResult:
    """Typed outcome of ``QuotaLedger.try_reserve``."""

    status: ReserveStatus
    departure_id: UUID
    requested_seats: int
    available_seats: int
    attempts: int = 1
    reservation: SeatReservation | None = None

    @property
    def reserved(self) -> bool:
        return self.status == ReserveStatus.RESERVED


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of ``QuotaLedger.release``. ``released`` is False for a repeated release."""

    reservation_id: UUID
    departure_id: UUID
    seats: int
    released: bool


@dataclass(frozen=True)
class Availability:
    departure_id: UUID
    quota: int
    reserved_seats: int
    status: DepartureStatus

    @property
    def available_seats(self) -> int:
        return self.quota - self.reserved_seats


@dataclass(frozen=True)
class AuditReport:
    """Comparison of a departure's counter with its active reservations."""

    departure_id: UUID
    quota: int
    reserved_seats: int
    active_reserved_seats: int
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


class LockNotAvailable(Exception):
    """The PostgreSQL advisory lock for a departure is held by another transaction."""


class QuotaLedger:
    """
    Atomic reserve and release against a departure's seat quota.

    Both operations synchronize on the same per-departure exclusion point: an
    in-process keyed lock plus, on PostgreSQL, a transaction-scoped advisory
    lock. The counter itself only moves through conditional UPDATEs, so the
    capacity check and the increment are a single statement.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def try_reserve(self, departure_id: UUID, seats: int, customer_ref: str) -> ReserveResult:
        """
        Reserve ``seats`` on a departure if, and only if, they fit within its quota.

        The reservation and the counter increment are committed together before
        returning. Contention (lock timeouts, busy advisory locks, database lock
        errors) is retried up to ``settings.reservation_max_attempts`` times with
        linear backoff.

        Args:
            departure_id: Departure to reserve on
            seats: Number of seats, must be positive
            customer_ref: Customer the seats are held for

        Returns:
            RESERVED with the new reservation, INSUFFICIENT_CAPACITY, or
            CONCURRENT_MODIFICATION when the retry budget ran out

        Raises:
            ValidationError: If ``seats`` is not positive
            NotFoundError: If the departure does not exist
            DepartureClosedError: If the departure is closed
            InvariantViolationError: If the counter is found outside ``[0, quota]``
        """
        if seats <= 0:
            raise ValidationError(detail=f"Seats to reserve must be positive (got {seats})")

        max_attempts = settings.reservation_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                async with departure_locks.hold(departure_id, timeout=settings.lock_timeout_seconds):
                    return await self._reserve_once(departure_id, seats, customer_ref, attempt)
            except (LockTimeout, LockNotAvailable, OperationalError) as e:
                await self.db.rollback()
                logger.warning(
                    "Seat reservation attempt hit contention",
                    extra={
                        "departure_id": str(departure_id),
                        "seats": seats,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": str(e),
                    }
                )
                if attempt < max_attempts:
                    await asyncio.sleep(settings.reservation_retry_backoff_seconds * attempt)

        availability = await self.availability(departure_id)
        metrics_collector.record_reservation_rejected("concurrent_modification")
        logger.error(
            "Seat reservation abandoned after repeated contention",
            extra={
                "departure_id": str(departure_id),
                "seats": seats,
                "attempts": max_attempts,
            }
        )
        return ReserveResult(
            status=ReserveStatus.CONCURRENT_MODIFICATION,
            departure_id=departure_id,
            requested_seats=seats,
            available_seats=availability.available_seats,
            attempts=max_attempts,
        )

    async def _reserve_once(
        self,
        departure_id: UUID,
        seats: int,
        customer_ref: str,
        attempt: int
    ) -> ReserveResult:
        await self._acquire_advisory_lock(departure_id)

        stmt = (
            update(Departure)
            .where(
                Departure.id == departure_id,
                Departure.status == DepartureStatus.OPEN,
                Departure.reserved_seats + seats <= Departure.quota,
            )
            .values(reserved_seats=Departure.reserved_seats + seats)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            departure = await self._load_departure(departure_id)
            snapshot = None if departure is None else (departure.status, departure.quota, departure.reserved_seats)
            await self.db.rollback()

            if snapshot is None:
                raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

            status, quota, reserved = snapshot
            if status != DepartureStatus.OPEN:
                metrics_collector.record_reservation_rejected("departure_closed")
                raise DepartureClosedError(str(departure_id))

            self._check_bounds(departure_id, quota, reserved)

            metrics_collector.record_reservation_rejected("insufficient_capacity")
            logger.warning(
                "Seat reservation rejected - insufficient capacity",
                extra={
                    "departure_id": str(departure_id),
                    "requested_seats": seats,
                    "available_seats": quota - reserved,
                    "attempt": attempt,
                }
            )
            return ReserveResult(
                status=ReserveStatus.INSUFFICIENT_CAPACITY,
                departure_id=departure_id,
                requested_seats=seats,
                available_seats=quota - reserved,
                attempts=attempt,
            )

        departure = await self._load_departure(departure_id)
        quota, reserved = departure.quota, departure.reserved_seats
        if not 0 <= reserved <= quota:
            await self.db.rollback()
            self._check_bounds(departure_id, quota, reserved)

        reservation = SeatReservation(
            departure_id=departure_id,
            seats=seats,
            customer_ref=customer_ref,
            status=ReservationStatus.ACTIVE,
        )
        self.db.add(reservation)
        await self.db.commit()
        await self.db.refresh(reservation)

        metrics_collector.set_capacity_utilization(str(departure_id), reserved, quota)
        logger.info(
            "Seats reserved",
            extra={
                "departure_id": str(departure_id),
                "reservation_id": str(reservation.id),
                "seats": seats,
                "reserved_seats": reserved,
                "quota": quota,
                "attempt": attempt,
            }
        )

        return ReserveResult(
            status=ReserveStatus.RESERVED,
            departure_id=departure_id,
            requested_seats=seats,
            available_seats=quota - reserved,
            attempts=attempt,
            reservation=reservation,
        )

    async def release(self, reservation_id: UUID, commit: bool = True) -> ReleaseResult:
        """
        Give a reservation's seats back to its departure, exactly once.

        The reservation is flipped from ACTIVE to RELEASED with a conditional
        update; only the caller that performs the flip decrements the counter.
        Any other pending changes in the session (a booking's cancellation, for
        instance) are committed in the same transaction.

        Args:
            reservation_id: Reservation to release
            commit: Commit the transaction before returning

        Returns:
            ReleaseResult, with ``released=False`` if the reservation had
            already been released

        Raises:
            NotFoundError: If the reservation does not exist
            ConcurrentModificationError: If the departure stayed locked for the
                whole retry budget
            InvariantViolationError: If the decrement would take the counter
                below zero
        """
        reservation = await self._load_reservation(reservation_id)
        if reservation is None:
            raise NotFoundError(resource_type="seat_reservation", resource_id=str(reservation_id))
        departure_id, seats = reservation.departure_id, reservation.seats

        max_attempts = settings.reservation_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                async with departure_locks.hold(departure_id, timeout=settings.lock_timeout_seconds):
                    return await self._release_once(reservation_id, departure_id, seats, commit)
            except (LockTimeout, LockNotAvailable) as e:
                # Nothing was written yet, so the session keeps the caller's pending changes
                logger.warning(
                    "Seat release attempt hit contention",
                    extra={
                        "reservation_id": str(reservation_id),
                        "departure_id": str(departure_id),
                        "attempt": attempt,
                        "error": str(e),
                    }
                )
                if attempt < max_attempts:
                    await asyncio.sleep(settings.reservation_retry_backoff_seconds * attempt)

        raise ConcurrentModificationError(
            resource_type="departure",
            resource_id=str(departure_id),
            attempts=max_attempts,
        )

    async def _release_once(
        self,
        reservation_id: UUID,
        departure_id: UUID,
        seats: int,
        commit: bool
    ) -> ReleaseResult:
        await self._acquire_advisory_lock(departure_id)

        flip = (
            update(SeatReservation)
            .where(
                SeatReservation.id == reservation_id,
                SeatReservation.status == ReservationStatus.ACTIVE,
            )
            .values(status=ReservationStatus.RELEASED, released_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if (await self.db.execute(flip)).rowcount != 1:
            if commit:
                await self.db.commit()
            logger.info(
                "Reservation already released - nothing to give back",
                extra={"reservation_id": str(reservation_id), "departure_id": str(departure_id)}
            )
            return ReleaseResult(
                reservation_id=reservation_id,
                departure_id=departure_id,
                seats=seats,
                released=False,
            )

        decrement = (
            update(Departure)
            .where(Departure.id == departure_id, Departure.reserved_seats >= seats)
            .values(reserved_seats=Departure.reserved_seats - seats)
            .execution_options(synchronize_session=False)
        )
        if (await self.db.execute(decrement)).rowcount != 1:
            departure = await self._load_departure(departure_id)
            quota = departure.quota if departure else 0
            reserved = departure.reserved_seats if departure else 0
            await self.db.rollback()
            self._raise_invariant_violation(
                departure_id,
                f"Releasing {seats} seats would take reserved_seats ({reserved}) below zero",
                {"quota": quota, "reserved_seats": reserved, "release_seats": seats},
            )

        departure = await self._load_departure(departure_id)
        quota, reserved = departure.quota, departure.reserved_seats

        if commit:
            await self.db.commit()

        metrics_collector.set_capacity_utilization(str(departure_id), reserved, quota)
        logger.info(
            "Seats released",
            extra={
                "reservation_id": str(reservation_id),
                "departure_id": str(departure_id),
                "seats": seats,
                "reserved_seats": reserved,
                "quota": quota,
            }
        )

        return ReleaseResult(
            reservation_id=reservation_id,
            departure_id=departure_id,
            seats=seats,
            released=True,
        )

    async def availability(self, departure_id: UUID) -> Availability:
        """
        Current quota, reserved and available seats of a departure.

        Raises:
            NotFoundError: If the departure does not exist
        """
        departure = await self._load_departure(departure_id)
        if departure is None:
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))
        return Availability(
            departure_id=departure_id,
            quota=departure.quota,
            reserved_seats=departure.reserved_seats,
            status=DepartureStatus(departure.status),
        )

    async def audit(self, departure_id: UUID) -> AuditReport:
        """
        Check a departure's counter against its bounds and its active reservations.

        The counter and the active reservation total are read by one statement,
        so both come from the same snapshot even while reservations commit.
        Problems are logged at CRITICAL and counted, never corrected.

        Raises:
            NotFoundError: If the departure does not exist
        """
        active_seats = (
            select(func.coalesce(func.sum(SeatReservation.seats), 0))
            .where(
                SeatReservation.departure_id == Departure.id,
                SeatReservation.status == ReservationStatus.ACTIVE,
            )
            .correlate(Departure)
            .scalar_subquery()
        )
        stmt = select(Departure.quota, Departure.reserved_seats, active_seats).where(
            Departure.id == departure_id
        )
        row = (await self.db.execute(stmt)).one_or_none()
        if row is None:
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))
        quota, reserved = row[0], row[1]
        active = int(row[2])

        problems = []
        if reserved < 0:
            problems.append(f"reserved_seats {reserved} is negative")
        if reserved > quota:
            problems.append(f"reserved_seats {reserved} exceeds quota {quota}")
        if reserved != active:
            problems.append(f"reserved_seats {reserved} differs from active reservations {active}")

        report = AuditReport(
            departure_id=departure_id,
            quota=quota,
            reserved_seats=reserved,
            active_reserved_seats=active,
            problems=problems,
        )

        if problems:
            metrics_collector.record_invariant_violation(str(departure_id))
            logger.critical(
                "Quota ledger audit found inconsistencies",
                extra={
                    "departure_id": str(departure_id),
                    "quota": quota,
                    "reserved_seats": reserved,
                    "active_reserved_seats": active,
                    "problems": problems,
                }
            )
        else:
            metrics_collector.set_capacity_utilization(str(departure_id), reserved, quota)

        return report

    async def _acquire_advisory_lock(self, departure_id: UUID) -> None:
        # Advisory locks are PostgreSQL only; the in-process lock covers SQLite
        if not is_postgresql(self.db):
            return
        acquired = (
            await self.db.execute(
                text("SELECT pg_try_advisory_xact_lock(hashtext(:departure_id))"),
                {"departure_id": str(departure_id)}
            )
        ).scalar()
        if not acquired:
            raise LockNotAvailable(f"Advisory lock for departure {departure_id} is held elsewhere")

    async def _load_departure(self, departure_id: UUID) -> Departure | None:
        stmt = (
            select(Departure)
            .where(Departure.id == departure_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _load_reservation(self, reservation_id: UUID) -> SeatReservation | None:
        stmt = (
            select(SeatReservation)
            .where(SeatReservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    def _check_bounds(self, departure_id: UUID, quota: int, reserved: int) -> None:
        if not 0 <= reserved <= quota:
            self._raise_invariant_violation(
                departure_id,
                f"reserved_seats {reserved} is outside [0, {quota}]",
                {"quota": quota, "reserved_seats": reserved},
            )

    def _raise_invariant_violation(self, departure_id: UUID, detail: str, observed: dict) -> None:
        metrics_collector.record_invariant_violation(str(departure_id))
        logger.critical(
            "Quota ledger invariant violated",
            extra={"departure_id": str(departure_id), "detail": detail, "observed": observed}
        )
        raise InvariantViolationError(str(departure_id), detail, observed)
