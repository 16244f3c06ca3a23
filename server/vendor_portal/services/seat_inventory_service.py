"""Seat inventory service: the only writer of a departure's ``booked_seats``."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.conditional_store import conditional_update
from ..core.exceptions import NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.departure import Departure, DepartureStatus

logger = logging.getLogger(__name__)

BOOKABLE_STATUSES = (DepartureStatus.SCHEDULED.value, DepartureStatus.CONFIRMED.value)


@dataclass(frozen=True)
class SeatAvailability:
    """Point-in-time view of a departure's seat counter."""

    departure_id: UUID
    total_capacity: int
    booked_seats: int
    available_seats: int
    is_active: bool


class SeatInventoryService:
    """Service for reserving and releasing departure seats."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve_or_release(self, departure_id: UUID, delta: int) -> bool:
        """
        Atomically add ``delta`` to the departure's booked seats.

        A positive delta reserves seats, a negative delta releases them. The
        update is applied only if the result stays within
        ``0..total_capacity``; reservations additionally require the departure
        to be active and not yet completed. Check and write are one guarded
        statement, so concurrent callers can never push the counter out of range.

        Args:
            departure_id: Departure whose counter changes
            delta: Non-zero signed seat count

        Returns:
            True if the change was committed, False if it was rejected
            because it would violate capacity, the departure is no longer
            accepting reservations, or the departure does not exist

        Raises:
            ValidationError: If delta is zero
            StoreUnavailableError: If the store failed
        """
        if delta == 0:
            raise ValidationError("Seat delta must be non-zero", errors={"delta": delta})

        new_count = Departure.booked_seats + delta
        conditions = [
            new_count >= 0,
            new_count <= Departure.total_capacity,
        ]
        if delta > 0:
            conditions.append(Departure.is_active.is_(True))
            conditions.append(Departure.status.in_(BOOKABLE_STATUSES))

        result = await conditional_update(
            self.db,
            Departure,
            departure_id,
            {"booked_seats": new_count, "updated_at": datetime.now(timezone.utc)},
            and_(*conditions),
        )
        metrics_collector.record_seat_update(delta, result.applied)

        if result.applied:
            booked = result.current["booked_seats"]
            total = result.current["total_capacity"]
            metrics_collector.set_capacity_utilization(str(departure_id), booked, total)
            logger.info(
                "Seat counter updated",
                extra={
                    "departure_id": str(departure_id),
                    "delta": delta,
                    "booked_seats": booked,
                    "total_capacity": total,
                }
            )
            return True

        if not result.found:
            logger.warning(
                "Seat counter update rejected - departure not found",
                extra={"departure_id": str(departure_id), "delta": delta}
            )
            return False

        logger.info(
            "Seat counter update rejected by capacity guard",
            extra={
                "departure_id": str(departure_id),
                "delta": delta,
                "booked_seats": result.current["booked_seats"],
                "total_capacity": result.current["total_capacity"],
                "is_active": result.current["is_active"],
                "status": result.current["status"],
            }
        )
        return False

    async def get_availability(self, departure_id: UUID) -> SeatAvailability:
        """
        Read the departure's current seat counter.

        Raises:
            NotFoundError: If departure not found
        """
        stmt = (
            select(Departure)
            .where(Departure.id == departure_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        departure = result.scalar_one_or_none()

        if not departure:
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

        return SeatAvailability(
            departure_id=departure.id,
            total_capacity=departure.total_capacity,
            booked_seats=departure.booked_seats,
            available_seats=departure.available_seats,
            is_active=departure.is_active,
        )
