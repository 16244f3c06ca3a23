"""Departure service for business logic operations."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.conditional_store import conditional_delete, conditional_update
from ..core.config import settings
from ..core.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.departure import Departure, DepartureStatus
from ..models.plan import Plan
from ..schemas.departure import (
    BulkCreateDeparturesRequest,
    CreateDepartureRequest,
    Recurrence,
    UpdateDepartureRequest,
)
from .plan_service import PlanService

logger = logging.getLogger(__name__)

MAX_BULK_DATES = 366


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def generate_dates(start: date, end: date, recurrence: Recurrence, weekdays: list[int]) -> list[date]:
    """All dates in ``start..end`` (inclusive) matching the recurrence pattern."""
    wanted = set(weekdays)
    dates = []
    current = start
    while current <= end:
        if recurrence == Recurrence.DAILY or current.weekday() in wanted:
            dates.append(current)
        current += timedelta(days=1)
    return dates


class DepartureService:
    """Service for departure-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.plan_service = PlanService(db)

    def _validate_capacity(self, total_capacity: int) -> None:
        if total_capacity < 1 or total_capacity > settings.max_departure_capacity:
            raise ValidationError(
                f"Capacity must be between 1 and {settings.max_departure_capacity}",
                errors={"total_capacity": total_capacity}
            )

    def _validate_future_date(self, departure_date: date) -> None:
        if departure_date <= utc_today():
            raise ValidationError(
                "Departure date must be in the future",
                errors={"departure_date": departure_date.isoformat()}
            )

    async def create_departure(self, request: CreateDepartureRequest, vendor_id: str) -> Departure:
        """
        Create a new departure for a plan the vendor owns.

        Args:
            request: Departure creation request
            vendor_id: Calling vendor

        Returns:
            Created departure entity

        Raises:
            NotFoundError: If plan not found
            AuthorizationError: If the vendor does not own the plan
            ValidationError: If the date is not in the future or capacity is out of range
        """
        await self.plan_service.get_owned_plan_or_raise(request.plan_id, vendor_id)
        self._validate_future_date(request.departure_date)
        self._validate_capacity(request.total_capacity)

        departure = await self._insert_departure(
            plan_id=request.plan_id,
            departure_date=request.departure_date,
            pickup_location=request.pickup_location,
            pickup_time=request.pickup_time,
            total_capacity=request.total_capacity,
        )

        logger.info(
            "Departure created successfully",
            extra={
                "departure_id": str(departure.id),
                "plan_id": str(departure.plan_id),
                "departure_date": departure.departure_date.isoformat(),
                "total_capacity": departure.total_capacity,
            }
        )

        return departure

    async def _insert_departure(self, **fields: Any) -> Departure:
        departure = Departure(
            booked_seats=0,
            status=DepartureStatus.SCHEDULED.value,
            is_active=True,
            updated_at=datetime.now(timezone.utc),
            **fields,
        )
        self.db.add(departure)
        await self.db.commit()
        await self.db.refresh(departure)
        return departure

    async def bulk_create_departures(
        self, request: BulkCreateDeparturesRequest, vendor_id: str
    ) -> tuple[int, list[Departure], list[tuple[date, str]]]:
        """
        Create one departure per generated date.

        Each date is created independently; a date that fails does not stop
        the rest.

        Returns:
            (requested date count, created departures, (date, error) failures)

        Raises:
            NotFoundError: If plan not found
            AuthorizationError: If the vendor does not own the plan
            ValidationError: If capacity is out of range or too many dates are generated
        """
        await self.plan_service.get_owned_plan_or_raise(request.plan_id, vendor_id)
        self._validate_capacity(request.total_capacity)

        dates = generate_dates(request.start_date, request.end_date, request.recurrence, request.weekdays)
        if len(dates) > MAX_BULK_DATES:
            raise ValidationError(
                f"At most {MAX_BULK_DATES} departures can be created at once",
                errors={"dates": len(dates)}
            )

        created_ids: list[UUID] = []
        failures: list[tuple[date, str]] = []

        for departure_date in dates:
            try:
                self._validate_future_date(departure_date)
                departure = await self._insert_departure(
                    plan_id=request.plan_id,
                    departure_date=departure_date,
                    pickup_location=request.pickup_location,
                    pickup_time=request.pickup_time,
                    total_capacity=request.total_capacity,
                )
                created_ids.append(departure.id)
            except ValidationError as e:
                failures.append((departure_date, e.message))
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "Bulk departure insert failed",
                    extra={"plan_id": str(request.plan_id), "departure_date": departure_date.isoformat(), "error": str(e)}
                )
                failures.append((departure_date, "Failed to create departure"))

        # Re-read: a rollback above expires instances created earlier in the loop
        created: list[Departure] = []
        if created_ids:
            stmt = (
                select(Departure)
                .where(Departure.id.in_(created_ids))
                .order_by(Departure.departure_date)
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(stmt)
            created = list(result.scalars())

        logger.info(
            "Bulk departure creation completed",
            extra={
                "plan_id": str(request.plan_id),
                "requested": len(dates),
                "created": len(created),
                "failed": len(failures),
            }
        )

        return len(dates), created, failures

    async def get_departure_by_id(self, departure_id: UUID) -> Departure | None:
        """
        Get departure by ID, always reflecting the store's current row.

        Args:
            departure_id: Departure UUID

        Returns:
            Departure entity or None if not found
        """
        stmt = (
            select(Departure)
            .where(Departure.id == departure_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_departure_by_id_or_raise(self, departure_id: UUID) -> Departure:
        """
        Get departure by ID or raise NotFoundError.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.get_departure_by_id(departure_id)

        if not departure:
            logger.warning("Departure not found", extra={"departure_id": str(departure_id)})
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

        return departure

    async def get_departure_for_vendor(self, departure_id: UUID, vendor_id: str) -> tuple[Departure, Plan]:
        """
        Get a departure together with its plan, checking the vendor owns the plan.

        Raises:
            NotFoundError: If the departure or its plan is not found
            AuthorizationError: If another vendor owns the plan
        """
        departure = await self.get_departure_by_id_or_raise(departure_id)
        plan = await self.plan_service.get_owned_plan_or_raise(departure.plan_id, vendor_id)
        return departure, plan

    async def list_departures_by_plan(self, plan_id: UUID, vendor_id: str) -> list[Departure]:
        """List a plan's departures, newest date first."""
        await self.plan_service.get_owned_plan_or_raise(plan_id, vendor_id)

        stmt = (
            select(Departure)
            .where(Departure.plan_id == plan_id)
            .order_by(Departure.departure_date.desc(), Departure.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def update_departure(self, request: UpdateDepartureRequest, vendor_id: str) -> Departure:
        """
        Update a departure's schedule, pickup details, status or capacity.

        The write is guarded so that capacity can never drop below the seats
        booked at the moment of the write, even if bookings land between the
        read and the update.

        Raises:
            NotFoundError: If departure not found
            AuthorizationError: If the vendor does not own the plan
            ValidationError: If a field value is invalid
            PreconditionFailedError: If the departure is cancelled or capacity is below bookings
        """
        departure, _ = await self.get_departure_for_vendor(request.departure_id, vendor_id)

        values: dict[str, Any] = {}
        conditions = [Departure.is_active.is_(True)]

        if request.departure_date is not None:
            self._validate_future_date(request.departure_date)
            values["departure_date"] = request.departure_date
        if request.pickup_location is not None:
            values["pickup_location"] = request.pickup_location
        if request.pickup_time is not None:
            values["pickup_time"] = request.pickup_time
        if request.status is not None:
            if request.status == DepartureStatus.CANCELLED:
                raise ValidationError(
                    "Departures are cancelled through the cancel operation so bookings get refunded",
                    errors={"status": request.status.value}
                )
            values["status"] = request.status.value
        if request.total_capacity is not None:
            self._validate_capacity(request.total_capacity)
            values["total_capacity"] = request.total_capacity
            conditions.append(Departure.booked_seats <= request.total_capacity)

        if not values:
            return departure

        values["updated_at"] = datetime.now(timezone.utc)
        result = await conditional_update(
            self.db, Departure, request.departure_id, values, and_(*conditions)
        )

        if not result.found:
            raise NotFoundError(resource_type="departure", resource_id=str(request.departure_id))

        if not result.applied:
            current = result.current
            if not current["is_active"]:
                raise PreconditionFailedError("Cannot update a cancelled departure", code="DEPARTURE_CANCELLED")
            raise PreconditionFailedError(
                f"Cannot reduce capacity below current bookings ({current['booked_seats']})",
                code="CAPACITY_BELOW_BOOKINGS",
            )

        logger.info(
            "Departure updated successfully",
            extra={
                "departure_id": str(request.departure_id),
                "fields": sorted(k for k in values if k != "updated_at"),
            }
        )

        return await self.get_departure_by_id_or_raise(request.departure_id)

    async def complete_past_departures(self, today: date | None = None) -> tuple[int, int]:
        """
        Mark departures whose date has passed as completed, along with their confirmed bookings.

        Seat counters are left untouched; a completed booking still counts
        against its departure.

        Returns:
            (departures completed, bookings completed)
        """
        today = today or utc_today()
        now = datetime.now(timezone.utc)

        departures_stmt = (
            update(Departure)
            .where(
                Departure.departure_date < today,
                Departure.is_active.is_(True),
                Departure.status.in_([DepartureStatus.SCHEDULED.value, DepartureStatus.CONFIRMED.value]),
            )
            .values(status=DepartureStatus.COMPLETED.value, updated_at=now)
            .returning(Departure.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(departures_stmt)
        departure_ids = list(result.scalars())

        booking_count = 0
        if departure_ids:
            bookings_stmt = (
                update(Booking)
                .where(
                    Booking.departure_id.in_(departure_ids),
                    Booking.booking_status == BookingStatus.CONFIRMED.value,
                    Booking.payment_status == PaymentStatus.COMPLETED.value,
                )
                .values(booking_status=BookingStatus.COMPLETED.value, updated_at=now)
                .returning(Booking.id)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(bookings_stmt)
            booking_count = len(list(result.scalars()))

        await self.db.commit()

        if departure_ids:
            logger.info(
                "Past departures completed",
                extra={"departures": len(departure_ids), "bookings": booking_count, "today": today.isoformat()}
            )

        return len(departure_ids), booking_count

    async def delete_departure(self, departure_id: UUID, vendor_id: str) -> None:
        """
        Delete a departure that has no booked seats.

        Raises:
            NotFoundError: If departure not found
            AuthorizationError: If the vendor does not own the plan
            PreconditionFailedError: If seats are booked
        """
        await self.get_departure_for_vendor(departure_id, vendor_id)

        result = await conditional_delete(
            self.db, Departure, departure_id, Departure.booked_seats == 0
        )

        if not result.found:
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

        if not result.applied:
            booked = result.current["booked_seats"]
            raise PreconditionFailedError(
                f"Cannot delete departure with existing bookings ({booked} seats booked)",
                code="DEPARTURE_HAS_BOOKINGS",
            )

        logger.info("Departure deleted", extra={"departure_id": str(departure_id)})
