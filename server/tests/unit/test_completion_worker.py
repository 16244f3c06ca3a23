"""Unit tests for the departure completion worker and worker manager."""

from datetime import timedelta

import pytest
from conftest import insert_booking, insert_departure, insert_plan, utc_now
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vendor_portal.models import BookingStatus, DepartureStatus
from vendor_portal.services.booking_service import BookingService
from vendor_portal.services.departure_service import DepartureService
from vendor_portal.workers.base import BaseWorker
from vendor_portal.workers.departure_completion_worker import DepartureCompletionWorker
from vendor_portal.workers.manager import WorkerManager


@pytest.mark.asyncio
async def test_process_completes_past_departures(test_engine, test_session):
    plan = await insert_plan(test_session)
    departure = await insert_departure(test_session, plan, days_ahead=5, booked_seats=3)
    booking = await insert_booking(test_session, departure, num_people=3)

    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    worker = DepartureCompletionWorker(
        interval_seconds=60,
        session_factory=factory,
        today=lambda: (utc_now() + timedelta(days=10)).date(),
    )

    await worker.process()

    completed = await DepartureService(test_session).get_departure_by_id(departure.id)
    assert completed.status == DepartureStatus.COMPLETED.value
    assert completed.booked_seats == 3
    refreshed = await BookingService(test_session).get_booking_by_id(booking.id)
    assert refreshed.booking_status == BookingStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_process_leaves_upcoming_departures(test_engine, test_session):
    plan = await insert_plan(test_session)
    departure = await insert_departure(test_session, plan, days_ahead=5)

    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    await DepartureCompletionWorker(session_factory=factory).process()

    unchanged = await DepartureService(test_session).get_departure_by_id(departure.id)
    assert unchanged.status == DepartureStatus.SCHEDULED.value


class _CountingWorker(BaseWorker):
    def __init__(self):
        super().__init__(name="Counting", interval_seconds=3600)
        self.iterations = 0

    async def process(self) -> None:
        self.iterations += 1


@pytest.mark.asyncio
async def test_manager_starts_and_stops_workers():
    worker = _CountingWorker()
    manager = WorkerManager({"counting": worker})

    await manager.start_all()
    assert manager.get_worker_status() == {"counting": True}

    await manager.stop_all()
    assert manager.get_worker_status() == {"counting": False}
    assert manager.get_worker("counting") is worker
