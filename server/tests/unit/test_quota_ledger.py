"""Unit tests for the quota ledger."""

import uuid

import pytest
from sqlalchemy import select, update

from app.core.config import settings
from app.core.exceptions import (
    ConcurrentModificationError,
    DepartureClosedError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from app.core.locking import departure_locks
from app.models.booking import ReservationStatus, SeatReservation
from app.models.departure import Departure
from app.schemas.departure import CloseDepartureRequest
from app.services.departure_service import DepartureService
from app.services.quota_ledger import QuotaLedger, ReserveStatus


@pytest.fixture
def impatient_ledger(monkeypatch):
    """Short lock waits and no backoff, so a held departure lock exhausts the retries quickly."""
    monkeypatch.setattr(settings, "lock_timeout_seconds", 0.01)
    monkeypatch.setattr(settings, "reservation_max_attempts", 3)
    monkeypatch.setattr(settings, "reservation_retry_backoff_seconds", 0.0)


@pytest.mark.asyncio
async def test_reserve_within_quota(test_session, departure):
    """Test that a reservation within the quota is granted and counted."""
    ledger = QuotaLedger(test_session)

    result = await ledger.try_reserve(departure.id, 3, "customer-1")

    assert result.status == ReserveStatus.RESERVED
    assert result.reserved is True
    assert result.available_seats == 42
    assert result.reservation.seats == 3
    assert result.reservation.status == ReservationStatus.ACTIVE

    availability = await ledger.availability(departure.id)
    assert availability.reserved_seats == 3
    assert availability.available_seats == 42


@pytest.mark.asyncio
async def test_reserve_exactly_remaining_seats(test_session, make_departure):
    departure = await make_departure(code="DEP-SMALL", quota=5)
    ledger = QuotaLedger(test_session)

    result = await ledger.try_reserve(departure.id, 5, "customer-1")

    assert result.reserved
    assert result.available_seats == 0


@pytest.mark.asyncio
async def test_reserve_beyond_quota_changes_nothing(test_session, make_departure):
    """Test that an oversized reservation is rejected without touching the counter."""
    departure = await make_departure(code="DEP-FULL", quota=50)
    ledger = QuotaLedger(test_session)
    await ledger.try_reserve(departure.id, 48, "customer-1")

    result = await ledger.try_reserve(departure.id, 3, "customer-2")

    assert result.status == ReserveStatus.INSUFFICIENT_CAPACITY
    assert result.reservation is None
    assert result.available_seats == 2

    availability = await ledger.availability(departure.id)
    assert availability.reserved_seats == 48

    reservations = (await test_session.execute(
        select(SeatReservation).where(SeatReservation.departure_id == departure.id)
    )).scalars().all()
    assert len(reservations) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("seats", [0, -1])
async def test_reserve_requires_positive_seats(test_session, departure, seats):
    with pytest.raises(ValidationError):
        await QuotaLedger(test_session).try_reserve(departure.id, seats, "customer-1")


@pytest.mark.asyncio
async def test_reserve_unknown_departure(test_session):
    with pytest.raises(NotFoundError):
        await QuotaLedger(test_session).try_reserve(uuid.uuid4(), 1, "customer-1")


@pytest.mark.asyncio
async def test_reserve_on_closed_departure(test_session, departure):
    await DepartureService(test_session).close_departure(CloseDepartureRequest(departure_id=str(departure.id)))

    with pytest.raises(DepartureClosedError):
        await QuotaLedger(test_session).try_reserve(departure.id, 1, "customer-1")


@pytest.mark.asyncio
async def test_release_returns_seats_once(test_session, departure):
    """Test that releasing the same reservation twice gives seats back only once."""
    ledger = QuotaLedger(test_session)
    reserved = await ledger.try_reserve(departure.id, 4, "customer-1")
    await ledger.try_reserve(departure.id, 2, "customer-2")

    first = await ledger.release(reserved.reservation.id)
    second = await ledger.release(reserved.reservation.id)

    assert first.released is True
    assert first.seats == 4
    assert second.released is False

    availability = await ledger.availability(departure.id)
    assert availability.reserved_seats == 2

    reservation = await test_session.get(SeatReservation, reserved.reservation.id, populate_existing=True)
    assert reservation.status == ReservationStatus.RELEASED
    assert reservation.released_at is not None


@pytest.mark.asyncio
async def test_release_unknown_reservation(test_session):
    with pytest.raises(NotFoundError):
        await QuotaLedger(test_session).release(uuid.uuid4())


@pytest.mark.asyncio
async def test_release_below_zero_is_an_invariant_violation(test_session, departure):
    """Test that a release that would underflow the counter raises instead of clamping."""
    ledger = QuotaLedger(test_session)
    reservation_id = (await ledger.try_reserve(departure.id, 3, "customer-1")).reservation.id

    # Simulate drift: the counter lost seats outside the ledger
    await test_session.execute(update(Departure).where(Departure.id == departure.id).values(reserved_seats=1))
    await test_session.commit()

    with pytest.raises(InvariantViolationError) as exc_info:
        await ledger.release(reservation_id)

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == "INVARIANT_VIOLATION"

    # Nothing was written: the counter is not clamped and the reservation stays active
    availability = await ledger.availability(departure.id)
    assert availability.reserved_seats == 1
    reservation = await test_session.get(SeatReservation, reservation_id, populate_existing=True)
    assert reservation.status == ReservationStatus.ACTIVE


@pytest.mark.asyncio
async def test_audit_consistent_departure(test_session, departure):
    ledger = QuotaLedger(test_session)
    await ledger.try_reserve(departure.id, 3, "customer-1")
    await ledger.try_reserve(departure.id, 5, "customer-2")

    report = await ledger.audit(departure.id)

    assert report.ok
    assert report.reserved_seats == 8
    assert report.active_reserved_seats == 8


@pytest.mark.asyncio
async def test_audit_reports_drift_without_correcting(test_session, departure):
    """Test that the audit flags a counter that disagrees with active reservations."""
    ledger = QuotaLedger(test_session)
    await ledger.try_reserve(departure.id, 3, "customer-1")
    await test_session.execute(update(Departure).where(Departure.id == departure.id).values(reserved_seats=7))
    await test_session.commit()

    report = await ledger.audit(departure.id)

    assert not report.ok
    assert report.active_reserved_seats == 3
    assert any("differs from active reservations" in problem for problem in report.problems)
    assert (await ledger.availability(departure.id)).reserved_seats == 7


@pytest.mark.asyncio
async def test_reserve_reports_contention_when_departure_stays_locked(test_session, departure, impatient_ledger):
    """Test that a departure locked for the whole retry budget yields CONCURRENT_MODIFICATION."""
    ledger = QuotaLedger(test_session)

    async with departure_locks.hold(departure.id, timeout=1.0):
        result = await ledger.try_reserve(departure.id, 2, "customer-1")

    assert result.status == ReserveStatus.CONCURRENT_MODIFICATION
    assert result.reserved is False
    assert result.reservation is None
    assert result.attempts == 3
    assert result.available_seats == 45

    availability = await ledger.availability(departure.id)
    assert availability.reserved_seats == 0
    reservations = (await test_session.execute(
        select(SeatReservation).where(SeatReservation.departure_id == departure.id)
    )).scalars().all()
    assert reservations == []


@pytest.mark.asyncio
async def test_reserve_succeeds_once_lock_is_free(test_session, departure, impatient_ledger):
    ledger = QuotaLedger(test_session)
    async with departure_locks.hold(departure.id, timeout=1.0):
        contended = await ledger.try_reserve(departure.id, 2, "customer-1")

    result = await ledger.try_reserve(departure.id, 2, "customer-1")

    assert contended.status == ReserveStatus.CONCURRENT_MODIFICATION
    assert result.status == ReserveStatus.RESERVED
    assert result.attempts == 1
    assert (await ledger.availability(departure.id)).reserved_seats == 2


@pytest.mark.asyncio
async def test_release_raises_when_departure_stays_locked(test_session, departure, impatient_ledger):
    """Test that a contended release raises and leaves the reservation active."""
    ledger = QuotaLedger(test_session)
    reservation_id = (await ledger.try_reserve(departure.id, 4, "customer-1")).reservation.id

    async with departure_locks.hold(departure.id, timeout=1.0):
        with pytest.raises(ConcurrentModificationError) as exc_info:
            await ledger.release(reservation_id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.code == "CONCURRENT_MODIFICATION"
    assert exc_info.value.retryable is True
    assert exc_info.value.problem_details["attempts"] == 3
    assert exc_info.value.problem_details["resource_id"] == str(departure.id)

    assert (await ledger.availability(departure.id)).reserved_seats == 4
    reservation = await test_session.get(SeatReservation, reservation_id, populate_existing=True)
    assert reservation.status == ReservationStatus.ACTIVE

    released = await ledger.release(reservation_id)
    assert released.released is True
    assert (await ledger.availability(departure.id)).reserved_seats == 0
