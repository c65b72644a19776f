"""Test configuration and fixtures."""

import os

# Point the application's own engine at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402

from app.core.database import Base, get_db  # noqa: E402
from app.models import *  # noqa: F403,E402 - Import all models
from app.schemas.allocation import PriceTable, RoomAllocationRequest  # noqa: E402
from app.schemas.booking import CreateBookingRequest  # noqa: E402
from app.schemas.departure import CreateDepartureRequest  # noqa: E402
from app.services.booking_service import BookingService  # noqa: E402
from app.services.departure_service import DepartureService  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STANDARD_PRICES = {
    "quad": 25_000_000,
    "triple": 27_500_000,
    "double": 30_000_000,
    "single": 36_000_000,
}


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def file_session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    Every session gets its own connection, so concurrently running sessions
    see each other's commits the way separate requests do.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create the FastAPI application bound to the test session."""
    from app.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def departure_request(code: str = "DEP-TEST-01", quota: int = 45, **prices) -> CreateDepartureRequest:
    """Departure creation request with the standard price table unless overridden."""
    departure_date = date.today() + timedelta(days=60)
    return CreateDepartureRequest(
        code=code,
        departure_date=departure_date,
        return_date=departure_date + timedelta(days=12),
        quota=quota,
        prices=PriceTable(**{**STANDARD_PRICES, **prices}),
    )


def booking_request(departure, customer_ref: str = "customer-1", **allocation) -> CreateBookingRequest:
    """Booking creation request for ``departure``; defaults to two quad passengers."""
    return CreateBookingRequest(
        departure_id=str(departure.id),
        customer_ref=customer_ref,
        allocation=RoomAllocationRequest(**(allocation or {"quad": 2})),
    )


def detached(session: AsyncSession, instance):
    """
    Detach a freshly created entity from the test session.

    Services roll the session back when they reject a request, which expires
    every attached instance. Detached fixtures keep their loaded values.
    """
    session.expunge(instance)
    return instance


@pytest_asyncio.fixture
async def departure(test_session):
    """An open departure with 45 seats and the standard price table."""
    return detached(test_session, await DepartureService(test_session).create_departure(departure_request()))


@pytest_asyncio.fixture
async def booking(test_session, departure):
    """A PENDING_PAYMENT booking of four quad passengers (100,000,000 total)."""
    return detached(test_session, await BookingService(test_session).create_booking(booking_request(departure, quad=4)))


@pytest.fixture
def sample_departure_data():
    """Sample departure data for API tests."""
    departure_date = date.today() + timedelta(days=60)
    return {
        "code": "DEP-API-01",
        "departure_date": departure_date.isoformat(),
        "return_date": (departure_date + timedelta(days=12)).isoformat(),
        "quota": 45,
        "prices": STANDARD_PRICES,
    }


@pytest.fixture
def make_departure(test_session):
    """Factory creating departures in the test session."""
    async def _make(code: str = "DEP-TEST-02", quota: int = 45, **prices):
        departure = await DepartureService(test_session).create_departure(departure_request(code, quota, **prices))
        return detached(test_session, departure)
    return _make


@pytest.fixture
def make_booking(test_session):
    """Factory creating bookings in the test session."""
    async def _make(departure, customer_ref: str = "customer-1", **allocation):
        booking = await BookingService(test_session).create_booking(
            booking_request(departure, customer_ref, **allocation)
        )
        return detached(test_session, booking)
    return _make


@pytest.fixture
def new_departure_request():
    """The departure request builder, for tests that manage their own sessions."""
    return departure_request
