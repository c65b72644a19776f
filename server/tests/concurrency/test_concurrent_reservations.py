"""Concurrency tests for reservations, cancellations and payments."""

import asyncio

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.core.exceptions import InsufficientCapacityError, PaymentExceedsTotalError
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment
from app.schemas.allocation import RoomAllocationRequest
from app.schemas.booking import CancelBookingRequest, CreateBookingRequest
from app.schemas.payment import RecordPaymentRequest
from app.services.booking_service import BookingService
from app.services.departure_service import DepartureService
from app.services.payment_service import PaymentService
from app.services.quota_ledger import QuotaLedger, ReserveStatus


@pytest.fixture(autouse=True)
def patient_locks(monkeypatch):
    """Dozens of waiters queue behind file-backed commits in these tests."""
    monkeypatch.setattr(settings, "lock_timeout_seconds", 30.0)


async def _create_departure(session_factory, request):
    async with session_factory() as session:
        return await DepartureService(session).create_departure(request)


async def _reserved_seats(session_factory, departure_id) -> int:
    async with session_factory() as session:
        return (await QuotaLedger(session).availability(departure_id)).reserved_seats


@pytest.mark.asyncio
async def test_concurrent_reservations_for_last_seats(file_session_factory, new_departure_request):
    """Two callers race for the last two seats; exactly one wins."""
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-RACE", quota=50))
    async with file_session_factory() as session:
        await QuotaLedger(session).try_reserve(departure.id, 48, "early-bird")

    async def reserve(customer_ref: str):
        async with file_session_factory() as session:
            return await QuotaLedger(session).try_reserve(departure.id, 2, customer_ref)

    results = await asyncio.gather(reserve("customer-a"), reserve("customer-b"))

    statuses = sorted(result.status for result in results)
    assert statuses == [ReserveStatus.INSUFFICIENT_CAPACITY, ReserveStatus.RESERVED]
    assert await _reserved_seats(file_session_factory, departure.id) == 50


@pytest.mark.asyncio
async def test_concurrent_oversized_reservations_all_rejected(file_session_factory, new_departure_request):
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-RACE-3", quota=50))
    async with file_session_factory() as session:
        await QuotaLedger(session).try_reserve(departure.id, 48, "early-bird")

    async def reserve(customer_ref: str):
        async with file_session_factory() as session:
            return await QuotaLedger(session).try_reserve(departure.id, 3, customer_ref)

    results = await asyncio.gather(reserve("customer-a"), reserve("customer-b"))

    assert all(result.status == ReserveStatus.INSUFFICIENT_CAPACITY for result in results)
    assert await _reserved_seats(file_session_factory, departure.id) == 48


@pytest.mark.asyncio
async def test_concurrent_bookings_never_oversell(file_session_factory, new_departure_request):
    """Test that concurrent booking requests don't cause overbooking."""
    quota = 20
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-RUSH", quota=quota))
    party_sizes = [1, 2, 3] * 10

    async def book(i: int, pax: int):
        async with file_session_factory() as session:
            try:
                return await BookingService(session).create_booking(
                    CreateBookingRequest(
                        departure_id=str(departure.id),
                        customer_ref=f"customer-{i}",
                        allocation=RoomAllocationRequest(single=pax),
                    )
                )
            except InsufficientCapacityError:
                return None

    results = await asyncio.gather(*(book(i, pax) for i, pax in enumerate(party_sizes)))

    booked = [booking for booking in results if booking is not None]
    booked_pax = sum(booking.total_pax for booking in booked)
    assert booked_pax <= quota
    assert await _reserved_seats(file_session_factory, departure.id) == booked_pax

    async with file_session_factory() as session:
        report = await QuotaLedger(session).audit(departure.id)
        stored = (await session.execute(
            select(func.count(Booking.id)).where(Booking.departure_id == departure.id)
        )).scalar_one()
    assert report.ok
    assert stored == len(booked)


@pytest.mark.asyncio
async def test_concurrent_cancellations_release_once(file_session_factory, new_departure_request):
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-CANCEL", quota=10))
    async with file_session_factory() as session:
        service = BookingService(session)
        keep = await service.create_booking(
            CreateBookingRequest(
                departure_id=str(departure.id), customer_ref="keeper", allocation=RoomAllocationRequest(quad=4)
            )
        )
        target = await service.create_booking(
            CreateBookingRequest(
                departure_id=str(departure.id), customer_ref="canceller", allocation=RoomAllocationRequest(triple=3)
            )
        )

    async def cancel():
        async with file_session_factory() as session:
            return await BookingService(session).cancel_booking(CancelBookingRequest(booking_id=str(target.id)))

    results = await asyncio.gather(*(cancel() for _ in range(5)))

    assert all(booking.status == BookingStatus.CANCELLED for booking in results)
    assert await _reserved_seats(file_session_factory, departure.id) == keep.total_pax


@pytest.mark.asyncio
async def test_concurrent_payments_never_exceed_total(file_session_factory, new_departure_request):
    """Concurrent appends for one booking serialize; the ceiling holds."""
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-PAYRUSH", quota=10))
    async with file_session_factory() as session:
        booking = await BookingService(session).create_booking(
            CreateBookingRequest(
                departure_id=str(departure.id), customer_ref="payer", allocation=RoomAllocationRequest(quad=4)
            )
        )

    async def pay():
        async with file_session_factory() as session:
            try:
                return await PaymentService(session).record_payment(
                    RecordPaymentRequest(booking_id=str(booking.id), amount=15_000_000)
                )
            except PaymentExceedsTotalError:
                return None

    results = await asyncio.gather(*(pay() for _ in range(10)))

    assert len([payment for payment in results if payment is not None]) == 6
    async with file_session_factory() as session:
        stored = await session.get(Booking, booking.id)
        ledger_sum = (await session.execute(
            select(func.sum(Payment.amount)).where(Payment.booking_id == booking.id)
        )).scalar_one()
    assert stored.paid_amount == 90_000_000
    assert ledger_sum == 90_000_000
    assert stored.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_interleaved_reserve_and_release(file_session_factory, new_departure_request):
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-CHURN", quota=6))
    async with file_session_factory() as session:
        first = await QuotaLedger(session).try_reserve(departure.id, 3, "first")
        second = await QuotaLedger(session).try_reserve(departure.id, 3, "second")
    reservation_ids = [first.reservation.id, second.reservation.id]

    async def release(reservation_id):
        async with file_session_factory() as session:
            return await QuotaLedger(session).release(reservation_id)

    async def reserve(customer_ref):
        async with file_session_factory() as session:
            return await QuotaLedger(session).try_reserve(departure.id, 3, customer_ref)

    results = await asyncio.gather(
        release(reservation_ids[0]),
        reserve("third"),
        release(reservation_ids[1]),
        reserve("fourth"),
        release(reservation_ids[0]),
    )

    granted = sum(1 for r in results if getattr(r, "status", None) == ReserveStatus.RESERVED)
    released = sum(1 for r in results if getattr(r, "released", False))
    assert released == 2
    assert await _reserved_seats(file_session_factory, departure.id) == 3 * granted

    async with file_session_factory() as session:
        assert (await QuotaLedger(session).audit(departure.id)).ok


@pytest.mark.asyncio
async def test_audit_during_reservation_commit_reports_no_drift(file_session_factory, new_departure_request):
    """A reservation committing while the audit reads must not look like drift."""
    departure = await _create_departure(file_session_factory, new_departure_request("DEP-AUDIT", quota=20))
    async with file_session_factory() as session:
        await QuotaLedger(session).try_reserve(departure.id, 4, "early-bird")

    async with file_session_factory() as auditor:
        read_statement = auditor.execute
        committed = []

        async def read_then_commit_reservation(*args, **kwargs):
            result = await read_statement(*args, **kwargs)
            if not committed:
                async with file_session_factory() as session:
                    committed.append(await QuotaLedger(session).try_reserve(departure.id, 3, "late-comer"))
            return result

        auditor.execute = read_then_commit_reservation
        report = await QuotaLedger(auditor).audit(departure.id)

    assert committed[0].status == ReserveStatus.RESERVED
    assert report.ok, report.problems
    assert report.reserved_seats == report.active_reserved_seats == 4

    async with file_session_factory() as session:
        after = await QuotaLedger(session).audit(departure.id)
    assert after.ok
    assert after.reserved_seats == 7
