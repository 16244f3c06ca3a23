"""Test configuration and fixtures."""

import os

# Settings are read at import time; point the app at SQLite before importing it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENABLE_WORKERS", "false")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from vendor_portal.core.config import settings
from vendor_portal.core.database import Base
from vendor_portal.core.dependencies import PAYMENTS_ROLE, VENDOR_ROLE, get_db, get_refund_service
from vendor_portal.models import *  # noqa: F403 - Import all models
from vendor_portal.models import Booking, BookingStatus, Departure, DepartureStatus, PaymentStatus, Plan
from vendor_portal.services.refund_client import RefundOutcome

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

VENDOR_ID = "vendor-1"
OTHER_VENDOR_ID = "vendor-2"
TRAVELLER_ID = "traveller-1"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FakeRefundService:
    """Refund service double that records calls and fails chosen bookings."""

    def __init__(self):
        self.calls: list[tuple[UUID, bool, str]] = []
        self.failures: dict[UUID, str] = {}
        self.raises: dict[UUID, Exception] = {}

    def fail(self, booking_id: UUID, error: str = "Refund API failed") -> None:
        self.failures[booking_id] = error

    def raise_for(self, booking_id: UUID, exc: Exception) -> None:
        self.raises[booking_id] = exc

    async def request_refund(self, booking_id: UUID, vendor_cancellation: bool, vendor_id: str) -> RefundOutcome:
        self.calls.append((booking_id, vendor_cancellation, vendor_id))
        if booking_id in self.raises:
            raise self.raises[booking_id]
        if booking_id in self.failures:
            return RefundOutcome(ok=False, error=self.failures[booking_id])
        return RefundOutcome(ok=True)


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
    Session factory over a database file, one connection per session.

    Concurrency tests need sessions that really are separate connections;
    an in-memory database shared through StaticPool would serialize them.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def refund_service():
    """Refund service double shared by the app and the test."""
    return FakeRefundService()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, refund_service):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from vendor_portal.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from vendor_portal.core.middleware import setup_middleware
    from vendor_portal.routers import booking, departure, health, inventory, metrics, plan

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Vendor Portal API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    setup_middleware(app, enable_logging=True)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routers
    app.include_router(health.router)
    app.include_router(plan.router)
    app.include_router(departure.router)
    app.include_router(booking.router)
    app.include_router(inventory.router)
    app.include_router(metrics.router)

    # Override database and refund dependencies
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_refund_service] = lambda: refund_service

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_token(user_id: str, role: str = "user") -> str:
    return jwt.encode({"sub": user_id, "role": role}, settings.bearer_token_secret, algorithm="HS256")


def auth_headers(user_id: str, role: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture
def vendor_headers():
    return auth_headers(VENDOR_ID, VENDOR_ROLE)


@pytest.fixture
def other_vendor_headers():
    return auth_headers(OTHER_VENDOR_ID, VENDOR_ROLE)


@pytest.fixture
def traveller_headers():
    return auth_headers(TRAVELLER_ID)


@pytest.fixture
def payments_headers():
    return auth_headers("payments-platform", PAYMENTS_ROLE)


async def insert_plan(session: AsyncSession, vendor_id: str = VENDOR_ID, price_amount: int = 500000) -> Plan:
    plan = Plan(
        vendor_id=vendor_id,
        name="Kedarkantha Winter Trek",
        description="Six days in the Govind Pashu Vihar sanctuary",
        price_amount=price_amount,
        price_currency="INR",
        is_active=True,
    )
    session.add(plan)
    await session.commit()
    await session.refresh(plan)
    return plan


async def insert_departure(
    session: AsyncSession,
    plan: Plan,
    total_capacity: int = 10,
    booked_seats: int = 0,
    days_ahead: int = 30,
    is_active: bool = True,
    status: DepartureStatus | None = None,
) -> Departure:
    if status is None:
        status = DepartureStatus.SCHEDULED if is_active else DepartureStatus.CANCELLED
    departure = Departure(
        plan_id=plan.id,
        departure_date=(utc_now() + timedelta(days=days_ahead)).date(),
        pickup_location="Dehradun ISBT",
        pickup_time="05:30",
        total_capacity=total_capacity,
        booked_seats=booked_seats,
        status=status.value,
        is_active=is_active,
        updated_at=utc_now(),
    )
    session.add(departure)
    await session.commit()
    await session.refresh(departure)
    return departure


async def insert_booking(
    session: AsyncSession,
    departure: Departure,
    user_id: str = TRAVELLER_ID,
    num_people: int = 2,
    booking_status: BookingStatus = BookingStatus.CONFIRMED,
    payment_status: PaymentStatus = PaymentStatus.COMPLETED,
    price_amount: int = 500000,
) -> Booking:
    """Insert a booking as-is; seat counters are the caller's business."""
    booking = Booking(
        plan_id=departure.plan_id,
        departure_id=departure.id,
        user_id=user_id,
        num_people=num_people,
        booking_status=booking_status.value,
        payment_status=payment_status.value,
        trip_cost=price_amount * num_people,
        platform_fee=0,
        total_amount=price_amount * num_people,
        updated_at=utc_now(),
    )
    session.add(booking)
    await session.commit()
    await session.refresh(booking)
    return booking


@pytest_asyncio.fixture
async def plan(test_session):
    return await insert_plan(test_session)


@pytest_asyncio.fixture
async def departure(test_session, plan):
    return await insert_departure(test_session, plan)
