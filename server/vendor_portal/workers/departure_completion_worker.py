"""Background worker that closes out departures whose date has passed."""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory
from ..core.observability import metrics_collector
from ..services.departure_service import DepartureService, utc_today
from .base import BaseWorker

logger = logging.getLogger(__name__)


class DepartureCompletionWorker(BaseWorker):
    """
    Marks past departures completed and moves their confirmed bookings to completed.

    Cancelled departures are left alone.
    """

    def __init__(
        self,
        interval_seconds: int = 3600,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        today: Optional[Callable[[], date]] = None,
    ):
        super().__init__(name="DepartureCompletion", interval_seconds=interval_seconds)
        self.session_factory = session_factory
        self.today = today or utc_today

    async def process(self) -> None:
        """Complete every departure dated before today."""
        async with self.session_factory() as db:
            try:
                departure_service = DepartureService(db)
                departures, bookings = await departure_service.complete_past_departures(self.today())

                if departures:
                    metrics_collector.record_departures_completed(departures)
                    logger.info(
                        "Completed past departures",
                        extra={
                            "departures_completed": departures,
                            "bookings_completed": bookings,
                            "worker": self.name,
                        }
                    )

            except Exception as e:
                await db.rollback()
                logger.error(
                    "Error completing past departures",
                    exc_info=True,
                    extra={"worker": self.name, "error": str(e)}
                )
                raise
