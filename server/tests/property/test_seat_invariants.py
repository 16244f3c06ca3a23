"""Property-based tests for seat inventory and booking invariants."""

import asyncio

from conftest import insert_booking, insert_departure, insert_plan
from hypothesis import given, settings
from hypothesis import strategies as st
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vendor_portal.core.database import Base
from vendor_portal.models import Booking, BookingStatus, PaymentStatus
from vendor_portal.services.booking_lifecycle import SEAT_HOLDING_STATUSES
from vendor_portal.services.booking_service import BookingService
from vendor_portal.services.seat_inventory_service import SeatInventoryService

# Strategies for generating test data
capacity_values = st.integers(min_value=1, max_value=20)
deltas = st.integers(min_value=-8, max_value=8).filter(lambda d: d != 0)
party_sizes = st.integers(min_value=1, max_value=5)
booking_actions = st.tuples(st.sampled_from(["pay", "fail", "cancel"]), st.integers(min_value=0, max_value=7))


async def _with_session(scenario):
    """Run ``scenario(session)`` against a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    try:
        async with factory() as session:
            return await scenario(session)
    finally:
        await engine.dispose()


@settings(max_examples=50, deadline=None)
@given(capacity=capacity_values, initial=st.integers(min_value=0, max_value=20), sequence=st.lists(deltas, max_size=30))
def test_counter_matches_model_and_stays_in_range(capacity, initial, sequence):
    """Every applied delta matches a simple model and the counter never leaves 0..capacity."""
    initial = min(initial, capacity)

    async def scenario(session):
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=capacity, booked_seats=initial)
        service = SeatInventoryService(session)

        expected = initial
        for delta in sequence:
            applied = await service.reserve_or_release(departure.id, delta)
            assert applied == (0 <= expected + delta <= capacity)
            if applied:
                expected += delta

            booked = (await service.get_availability(departure.id)).booked_seats
            assert booked == expected
            assert 0 <= booked <= capacity

    asyncio.run(_with_session(scenario))


@settings(max_examples=30, deadline=None)
@given(
    capacity=capacity_values,
    sizes=st.lists(party_sizes, min_size=1, max_size=8),
    actions=st.lists(booking_actions, max_size=20),
)
def test_booked_seats_equal_seat_holding_bookings(capacity, sizes, actions):
    """Whatever the order of payments, failures and cancellations, booked seats equal confirmed parties."""

    async def scenario(session):
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=capacity)
        bookings = [
            await insert_booking(
                session,
                departure,
                user_id=f"traveller-{i}",
                num_people=size,
                booking_status=BookingStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
            )
            for i, size in enumerate(sizes)
        ]
        service = BookingService(session)

        for action, index in actions:
            booking = bookings[index % len(bookings)]
            try:
                if action == "pay":
                    await service.complete_payment(booking.id)
                elif action == "fail":
                    await service.fail_payment(booking.id)
                else:
                    await service.cancel_booking(booking.id, booking.user_id)
            except Exception as e:
                # Rejected transitions and full departures are expected outcomes
                assert getattr(e, "status_code", None) == 409, e

        result = await session.execute(
            select(func.coalesce(func.sum(Booking.num_people), 0)).where(
                Booking.departure_id == departure.id,
                Booking.booking_status.in_(sorted(SEAT_HOLDING_STATUSES)),
                Booking.payment_status == PaymentStatus.COMPLETED.value,
            )
        )
        held = result.scalar_one()

        booked = (await SeatInventoryService(session).get_availability(departure.id)).booked_seats
        assert booked == held
        assert 0 <= booked <= capacity

    asyncio.run(_with_session(scenario))
