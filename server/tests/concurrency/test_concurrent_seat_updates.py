"""Concurrency tests for seat reservations, payments and cancellations.

Each task opens its own session, and so its own connection, against a shared
database file, so the guards are exercised by the store rather than by one
connection serializing everything.
"""

import asyncio

import pytest
from conftest import VENDOR_ID, FakeRefundService, insert_booking, insert_departure, insert_plan

from vendor_portal.models import BookingStatus, PaymentStatus
from vendor_portal.services.booking_service import BookingService
from vendor_portal.services.departure_cancellation_service import DepartureCancellationService
from vendor_portal.services.seat_inventory_service import SeatInventoryService

pytestmark = pytest.mark.concurrency


async def _reserve(factory, departure_id, seats: int) -> bool:
    async with factory() as session:
        return await SeatInventoryService(session).reserve_or_release(departure_id, seats)


async def _booked_seats(factory, departure_id) -> int:
    async with factory() as session:
        return (await SeatInventoryService(session).get_availability(departure_id)).booked_seats


@pytest.mark.asyncio
async def test_last_seat_goes_to_exactly_one_caller(file_session_factory):
    """Two callers racing for the only seat: one wins, one is rejected."""
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=1)

    results = await asyncio.gather(
        _reserve(file_session_factory, departure.id, 1),
        _reserve(file_session_factory, departure.id, 1),
    )

    assert sorted(results) == [False, True]
    assert await _booked_seats(file_session_factory, departure.id) == 1


@pytest.mark.asyncio
async def test_many_reservations_never_overbook(file_session_factory):
    """Twenty single-seat reservations against eight seats: exactly eight succeed."""
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=8)

    results = await asyncio.gather(*(_reserve(file_session_factory, departure.id, 1) for _ in range(20)))

    assert results.count(True) == 8
    assert await _booked_seats(file_session_factory, departure.id) == 8


@pytest.mark.asyncio
async def test_mixed_reserves_and_releases_stay_in_range(file_session_factory):
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=5, booked_seats=3)

    deltas = [2, -1, 3, -2, 1, -4, 2, -1]
    results = await asyncio.gather(*(_reserve(file_session_factory, departure.id, d) for d in deltas))

    applied = sum(d for d, ok in zip(deltas, results) if ok)
    booked = await _booked_seats(file_session_factory, departure.id)
    assert 0 <= booked <= 5
    assert booked == 3 + applied


@pytest.mark.asyncio
async def test_duplicate_payment_callbacks_reserve_once(file_session_factory):
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=10)
        booking = await insert_booking(
            session,
            departure,
            num_people=3,
            booking_status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )

    async def pay():
        async with file_session_factory() as session:
            try:
                return await BookingService(session).complete_payment(booking.id)
            except Exception as e:
                return e

    await asyncio.gather(pay(), pay(), pay())

    assert await _booked_seats(file_session_factory, departure.id) == 3
    async with file_session_factory() as session:
        final = await BookingService(session).get_booking_by_id(booking.id)
    assert final.booking_status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_paid_bookings_competing_for_seats(file_session_factory):
    """More paid parties than seats: confirmed parties exactly account for the booked seats."""
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=6)
        bookings = [
            await insert_booking(
                session,
                departure,
                user_id=f"traveller-{i}",
                num_people=2,
                booking_status=BookingStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
            )
            for i in range(5)
        ]

    async def pay(booking_id):
        async with file_session_factory() as session:
            try:
                await BookingService(session).complete_payment(booking_id)
            except Exception:
                pass
            return await BookingService(session).get_booking_by_id(booking_id)

    final = await asyncio.gather(*(pay(b.id) for b in bookings))

    confirmed = [b for b in final if b.booking_status == BookingStatus.CONFIRMED.value]
    failed = [b for b in final if b.booking_status == BookingStatus.FAILED.value]
    assert len(confirmed) == 3
    assert len(failed) == 2
    assert await _booked_seats(file_session_factory, departure.id) == 6


@pytest.mark.asyncio
async def test_concurrent_cancellations_release_once(file_session_factory):
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=10, booked_seats=6)
        booking = await insert_booking(session, departure, num_people=4)

    async def cancel():
        async with file_session_factory() as session:
            return await BookingService(session).cancel_booking(booking.id, booking.user_id)

    results = await asyncio.gather(cancel(), cancel(), cancel())

    assert all(r.booking_status == BookingStatus.CANCELLED.value for r in results)
    assert await _booked_seats(file_session_factory, departure.id) == 2


@pytest.mark.asyncio
async def test_departure_cancellation_racing_traveller_cancellation(file_session_factory):
    """A booking cancelled by both its traveller and its vendor releases its seats once."""
    async with file_session_factory() as session:
        plan = await insert_plan(session)
        departure = await insert_departure(session, plan, total_capacity=10, booked_seats=5)
        contested = await insert_booking(session, departure, user_id="traveller-a", num_people=2)
        await insert_booking(session, departure, user_id="traveller-b", num_people=3)

    async def traveller_cancel():
        async with file_session_factory() as session:
            return await BookingService(session).cancel_booking(contested.id, "traveller-a")

    async def vendor_cancel():
        async with file_session_factory() as session:
            service = DepartureCancellationService(session, FakeRefundService())
            return await service.cancel_departure(departure.id, "Flooding", VENDOR_ID)

    _, result = await asyncio.gather(traveller_cancel(), vendor_cancel())

    assert result.departure.is_active is False
    assert result.refund_results.total == result.refund_results.successful + result.refund_results.failed
    assert await _booked_seats(file_session_factory, departure.id) == 0
