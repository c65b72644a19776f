"""Unit tests for the booking service."""

import uuid

import pytest
from sqlalchemy import func, select, update

from app.core.exceptions import (
    DepartureClosedError,
    InsufficientCapacityError,
    InvalidAllocationError,
    InvalidBookingTransitionError,
    InvariantViolationError,
    NotFoundError,
    PriceMismatchError,
)
from app.models.booking import Booking, BookingStatus, ReservationStatus, SeatReservation
from app.models.departure import Departure
from app.schemas.allocation import PriceTable, RoomAllocationRequest
from app.schemas.booking import CancelBookingRequest, CompleteBookingRequest, CreateBookingRequest, GetBookingRequest
from app.schemas.departure import CloseDepartureRequest
from app.services.booking_service import BookingService
from app.services.departure_service import DepartureService
from app.services.quota_ledger import QuotaLedger


async def _reserved_seats(session, departure_id) -> int:
    return (await QuotaLedger(session).availability(departure_id)).reserved_seats


@pytest.mark.asyncio
async def test_create_booking_reserves_and_prices(test_session, departure):
    """Test that a booking reserves one seat per passenger and fixes its price."""
    booking = await BookingService(test_session).create_booking(
        CreateBookingRequest(
            departure_id=str(departure.id),
            customer_ref="customer-1",
            allocation=RoomAllocationRequest(quad=4, double=3),
        )
    )

    assert booking.status == BookingStatus.PENDING_PAYMENT
    assert booking.total_pax == 7
    assert booking.total_price == 4 * 25_000_000 + 3 * 30_000_000
    assert booking.paid_amount == 0
    assert len(booking.code) == 8
    assert await _reserved_seats(test_session, departure.id) == 7

    reservation = await test_session.get(SeatReservation, booking.reservation_id)
    assert reservation.seats == 7
    assert reservation.status == ReservationStatus.ACTIVE


@pytest.mark.asyncio
async def test_create_booking_with_explicit_price_table(test_session, departure):
    booking = await BookingService(test_session).create_booking(
        CreateBookingRequest(
            departure_id=str(departure.id),
            customer_ref="customer-1",
            allocation=RoomAllocationRequest(single=2),
            price_table=PriceTable(single=40_000_000),
        )
    )

    assert booking.total_price == 80_000_000


@pytest.mark.asyncio
async def test_room_allocation_derived_from_booking(test_session, departure, make_booking):
    booking = await make_booking(departure, quad=4, triple=3, double=3, single=1)

    allocation = BookingService(test_session).allocation_for(booking)

    assert allocation.total_rooms == 5
    assert allocation.requires_staff_pairing is True


@pytest.mark.asyncio
async def test_invalid_allocation_touches_nothing(test_session, departure):
    with pytest.raises(InvalidAllocationError):
        await BookingService(test_session).create_booking(
            CreateBookingRequest(
                departure_id=str(departure.id),
                customer_ref="customer-1",
                allocation=RoomAllocationRequest(),
            )
        )

    assert await _reserved_seats(test_session, departure.id) == 0


@pytest.mark.asyncio
async def test_price_mismatch_touches_nothing(test_session, make_departure, make_booking):
    departure = await make_departure(code="DEP-NO-SINGLE", single=None)

    with pytest.raises(PriceMismatchError):
        await make_booking(departure, single=1)

    assert await _reserved_seats(test_session, departure.id) == 0


@pytest.mark.asyncio
async def test_booking_larger_than_remaining_seats(test_session, make_departure, make_booking):
    departure = await make_departure(code="DEP-TIGHT", quota=5)
    await make_booking(departure, quad=4)

    with pytest.raises(InsufficientCapacityError) as exc_info:
        await make_booking(departure, customer_ref="customer-2", double=2)

    assert exc_info.value.problem_details["available_seats"] == 1
    assert await _reserved_seats(test_session, departure.id) == 4
    count = (await test_session.execute(select(func.count(Booking.id)))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_booking_on_closed_departure(test_session, departure, make_booking):
    await DepartureService(test_session).close_departure(CloseDepartureRequest(departure_id=str(departure.id)))

    with pytest.raises(DepartureClosedError):
        await make_booking(departure)


@pytest.mark.asyncio
async def test_booking_on_unknown_departure(test_session):
    with pytest.raises(NotFoundError):
        await BookingService(test_session).create_booking(
            CreateBookingRequest(
                departure_id=str(uuid.uuid4()),
                customer_ref="customer-1",
                allocation=RoomAllocationRequest(quad=1),
            )
        )


@pytest.mark.asyncio
async def test_failed_persistence_releases_reserved_seats(test_session, departure, monkeypatch):
    """Test that seats reserved for a booking that could not be saved are given back."""
    service = BookingService(test_session)

    async def failing_persist(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(service, "_persist_booking", failing_persist)

    with pytest.raises(RuntimeError, match="disk full"):
        await service.create_booking(
            CreateBookingRequest(
                departure_id=str(departure.id),
                customer_ref="customer-1",
                allocation=RoomAllocationRequest(triple=3),
            )
        )

    assert await _reserved_seats(test_session, departure.id) == 0
    reservations = (await test_session.execute(
        select(SeatReservation).execution_options(populate_existing=True)
    )).scalars().all()
    assert len(reservations) == 1
    assert reservations[0].status == ReservationStatus.RELEASED


@pytest.mark.asyncio
async def test_cancel_releases_seats(test_session, departure, booking):
    """Test that cancelling a booking returns its seats to the departure."""
    assert await _reserved_seats(test_session, departure.id) == 4

    cancelled = await BookingService(test_session).cancel_booking(CancelBookingRequest(booking_id=str(booking.id)))

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert await _reserved_seats(test_session, departure.id) == 0


@pytest.mark.asyncio
async def test_cancel_twice_releases_once(test_session, departure, booking, make_booking):
    """Test that a repeated cancellation is a no-op."""
    await make_booking(departure, customer_ref="customer-2", double=2)
    service = BookingService(test_session)

    await service.cancel_booking(CancelBookingRequest(booking_id=str(booking.id)))
    again = await service.cancel_booking(CancelBookingRequest(booking_id=str(booking.id)))

    assert again.status == BookingStatus.CANCELLED
    assert await _reserved_seats(test_session, departure.id) == 2


@pytest.mark.asyncio
async def test_cancel_completed_booking_is_noop(test_session, departure, booking):
    await test_session.execute(
        update(Booking).where(Booking.id == booking.id).values(status=BookingStatus.COMPLETED)
    )
    await test_session.commit()

    result = await BookingService(test_session).cancel_booking(CancelBookingRequest(booking_id=str(booking.id)))

    assert result.status == BookingStatus.COMPLETED
    assert await _reserved_seats(test_session, departure.id) == 4


@pytest.mark.asyncio
async def test_cancel_unknown_booking(test_session):
    with pytest.raises(NotFoundError):
        await BookingService(test_session).cancel_booking(CancelBookingRequest(booking_id=str(uuid.uuid4())))


@pytest.mark.asyncio
async def test_cancel_with_drifted_counter_surfaces_violation(test_session, departure, booking):
    """Test that a cancellation whose release would underflow is rolled back entirely."""
    await test_session.execute(update(Departure).where(Departure.id == departure.id).values(reserved_seats=1))
    await test_session.commit()

    with pytest.raises(InvariantViolationError):
        await BookingService(test_session).cancel_booking(CancelBookingRequest(booking_id=str(booking.id)))

    stored = await BookingService(test_session).get_booking_for_update(booking.id)
    assert stored.status == BookingStatus.PENDING_PAYMENT
    assert await _reserved_seats(test_session, departure.id) == 1


@pytest.mark.asyncio
async def test_complete_requires_confirmation(test_session, booking):
    with pytest.raises(InvalidBookingTransitionError) as exc_info:
        await BookingService(test_session).complete_booking(CompleteBookingRequest(booking_id=str(booking.id)))

    assert exc_info.value.problem_details["conflicting_resource"]["current_status"] == "PENDING_PAYMENT"


@pytest.mark.asyncio
async def test_complete_confirmed_booking(test_session, departure, booking):
    service = BookingService(test_session)
    stored = await service.get_booking_for_update(booking.id)
    assert service.confirm_booking(stored) is True
    await test_session.commit()

    completed = await service.complete_booking(CompleteBookingRequest(booking_id=str(booking.id)))
    again = await service.complete_booking(CompleteBookingRequest(booking_id=str(booking.id)))

    assert completed.status == BookingStatus.COMPLETED
    assert completed.completed_at is not None
    assert again.status == BookingStatus.COMPLETED
    # Completion keeps the seats: they were used
    assert await _reserved_seats(test_session, departure.id) == 4


@pytest.mark.asyncio
async def test_confirm_only_moves_pending_bookings(test_session, booking):
    service = BookingService(test_session)
    stored = await service.get_booking_for_update(booking.id)

    assert service.confirm_booking(stored) is True
    assert service.confirm_booking(stored) is False
    assert stored.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_get_booking(test_session, booking):
    found = await BookingService(test_session).get_booking(GetBookingRequest(booking_id=str(booking.id)))

    assert found.id == booking.id
    assert found.code == booking.code


@pytest.mark.asyncio
async def test_list_bookings_for_departure(test_session, departure, booking, make_booking):
    second = await make_booking(departure, customer_ref="customer-2", single=1)

    bookings = await BookingService(test_session).list_bookings_for_departure(departure.id)

    assert {b.id for b in bookings} == {booking.id, second.id}
