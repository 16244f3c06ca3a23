"""Vendor-initiated departure cancellation with per-booking refunds."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.conditional_store import conditional_update
from ..core.exceptions import AuthorizationError, NotFoundError, PreconditionFailedError, StoreUnavailableError
from ..core.observability import get_logger, metrics_collector
from ..models.booking import Booking
from ..models.departure import Departure, DepartureStatus
from .booking_lifecycle import BookingStatus, PaymentStatus, RefundStatus, full_refund
from .departure_service import DepartureService, utc_today
from .refund_client import RefundService
from .seat_inventory_service import SeatInventoryService

logger = get_logger(__name__)

DEFAULT_DEPARTURE_REASON = "Vendor cancelled departure"
NO_REASON = "No reason provided"


@dataclass(frozen=True)
class RefundSuccess:
    booking_id: UUID
    ok: bool = True


@dataclass(frozen=True)
class RefundFailure:
    booking_id: UUID
    reason: str
    ok: bool = False


RefundItemResult = Union[RefundSuccess, RefundFailure]


@dataclass(frozen=True)
class RefundSummary:
    """Tally of per-booking outcomes; ``successful + failed == total``."""

    total: int
    successful: int
    failed: int
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_items(cls, items: list[RefundItemResult]) -> "RefundSummary":
        failures = [item for item in items if isinstance(item, RefundFailure)]
        return cls(
            total=len(items),
            successful=len(items) - len(failures),
            failed=len(failures),
            errors=[f"Failed to refund booking {item.booking_id}: {item.reason}" for item in failures],
        )


@dataclass(frozen=True)
class CancellationResult:
    departure: Departure
    refund_results: RefundSummary
    items: list[RefundItemResult]


@dataclass(frozen=True)
class _EligibleBooking:
    """Fields of a booking captured before any refund call."""

    id: UUID
    departure_id: UUID
    num_people: int
    trip_cost: int


class DepartureCancellationService:
    """
    Cancels a departure on behalf of its vendor.

    Every confirmed, paid booking is refunded in full through the refund
    service and then cancelled; its seats are released. One booking failing
    never stops the others, and the departure is cancelled regardless of how
    many refunds failed. Bookings whose refund failed keep their state so they
    can be retried by operations.
    """

    def __init__(self, db: AsyncSession, refund_service: RefundService):
        self.db = db
        self.refund_service = refund_service
        self.departure_service = DepartureService(db)
        self.seat_inventory = SeatInventoryService(db)

    async def cancel_departure(
        self,
        departure_id: UUID,
        reason: Optional[str],
        actor_id: str,
    ) -> CancellationResult:
        """
        Cancel a departure and refund its confirmed bookings.

        Args:
            departure_id: Departure to cancel
            reason: Free-text reason, may be empty
            actor_id: Calling vendor

        Returns:
            CancellationResult with the cancelled departure and the refund tally

        Raises:
            NotFoundError: If the departure or its plan is not found
            AuthorizationError: If the vendor does not own the plan
            PreconditionFailedError: If already cancelled or in the past
            StoreUnavailableError: If a booking could not be claimed or the departure
                could not be marked cancelled
        """
        log = logger.with_context(departure_id=str(departure_id), actor_id=actor_id)

        departure = await self.departure_service.get_departure_by_id(departure_id)
        if departure is None:
            log.warning("Departure cancellation rejected - departure not found")
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

        plan = await self.departure_service.plan_service.get_plan_by_id(departure.plan_id)
        if plan is None:
            log.warning("Departure cancellation rejected - plan not found", plan_id=str(departure.plan_id))
            raise NotFoundError(resource_type="plan", resource_id=str(departure.plan_id))

        if plan.vendor_id != actor_id:
            log.warning("Departure cancellation rejected - vendor does not own plan")
            raise AuthorizationError("You do not own this departure")

        if not departure.is_active:
            raise PreconditionFailedError("Departure is already cancelled", code="ALREADY_CANCELLED")

        if departure.departure_date <= utc_today():
            raise PreconditionFailedError("Cannot cancel past departures", code="DEPARTURE_PAST")

        eligible = await self._eligible_bookings(departure_id)
        log.info("Departure cancellation started", eligible_bookings=len(eligible))

        items: list[RefundItemResult] = []
        for booking in eligible:
            items.append(await self._refund_and_cancel(booking, reason, actor_id, log))

        cancelled = await self._mark_departure_cancelled(departure_id, reason)

        # Payments confirmed while the refunds above ran were never listed.
        # Any confirmed from here on see the inactive departure and cancel themselves.
        seen = {booking.id for booking in eligible}
        late = [booking for booking in await self._eligible_bookings(departure_id) if booking.id not in seen]
        if late:
            log.info("Refunding bookings confirmed during cancellation", late_bookings=len(late))
            for booking in late:
                items.append(await self._refund_and_cancel(booking, reason, actor_id, log))
            cancelled = await self.departure_service.get_departure_by_id_or_raise(departure_id)

        summary = RefundSummary.from_items(items)
        metrics_collector.record_departure_cancelled(summary.successful, summary.failed)

        log.info(
            "Departure cancelled",
            total=summary.total,
            successful=summary.successful,
            failed=summary.failed,
        )

        return CancellationResult(departure=cancelled, refund_results=summary, items=items)

    async def _eligible_bookings(self, departure_id: UUID) -> list[_EligibleBooking]:
        stmt = (
            select(Booking.id, Booking.departure_id, Booking.num_people, Booking.trip_cost)
            .where(
                Booking.departure_id == departure_id,
                Booking.booking_status == BookingStatus.CONFIRMED.value,
                Booking.payment_status == PaymentStatus.COMPLETED.value,
            )
            .order_by(Booking.created_at)
        )
        result = await self.db.execute(stmt)
        return [_EligibleBooking(*row) for row in result.all()]

    async def _refund_and_cancel(self, booking: _EligibleBooking, reason, actor_id: str, log) -> RefundItemResult:
        """
        Refund one booking and, if the refund went through, cancel it and release its seats.

        Only refund service failures become a ``RefundFailure``. A store failure
        while claiming the booking propagates; the booking keeps its state and
        a retried cancellation picks it up again.
        """
        blog = log.with_context(booking_id=str(booking.id))

        try:
            outcome = await self.refund_service.request_refund(
                booking.id, vendor_cancellation=True, vendor_id=actor_id
            )
        except Exception as e:
            blog.exception("Refund service call failed during departure cancellation", error=str(e))
            return RefundFailure(booking.id, str(e) or type(e).__name__)

        if not outcome.ok:
            blog.warning("Refund rejected by payments platform", error=outcome.error)
            return RefundFailure(booking.id, outcome.error or "Refund API failed")

        terms = full_refund(booking)
        now = datetime.now(timezone.utc)
        claim = await conditional_update(
            self.db,
            Booking,
            booking.id,
            {
                "booking_status": BookingStatus.CANCELLED.value,
                "refund_status": RefundStatus.PROCESSING.value,
                "refund_percentage": terms.percentage,
                "refund_amount": terms.amount,
                "vendor_payout_amount": terms.vendor_payout_amount,
                "cancelled_at": now,
                "cancellation_reason": f"Vendor cancelled departure: {reason or NO_REASON}",
                "updated_at": now,
            },
            and_(
                Booking.booking_status == BookingStatus.CONFIRMED.value,
                Booking.payment_status == PaymentStatus.COMPLETED.value,
            ),
        )

        if not claim.applied:
            # Moved by someone else after it was listed; its seats are theirs to release
            current = claim.current["booking_status"] if claim.current else "missing"
            blog.warning("Booking changed during departure cancellation", booking_status=current)
            return RefundFailure(booking.id, f"Booking is no longer confirmed ({current})")

        metrics_collector.record_booking_cancelled("vendor")

        # The booking is cancelled and refunded from here on; a lost release is a seat-accounting error
        try:
            released = await self.seat_inventory.reserve_or_release(booking.departure_id, -booking.num_people)
        except StoreUnavailableError:
            blog.exception("Seat release failed for a refunded booking", num_people=booking.num_people)
            released = False
        else:
            if not released:
                blog.error("Seat release rejected for a refunded booking", num_people=booking.num_people)
        if not released:
            metrics_collector.record_seat_release_rejected("departure_cancel")

        blog.info("Booking refunded and cancelled", refund_amount=terms.amount)
        return RefundSuccess(booking.id)

    async def _mark_departure_cancelled(self, departure_id: UUID, reason: Optional[str]) -> Departure:
        now = datetime.now(timezone.utc)
        result = await conditional_update(
            self.db,
            Departure,
            departure_id,
            {
                "status": DepartureStatus.CANCELLED.value,
                "is_active": False,
                "cancelled_at": now,
                "cancellation_reason": reason or DEFAULT_DEPARTURE_REASON,
                "updated_at": now,
            },
        )
        if not result.found:
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

        return await self.departure_service.get_departure_by_id_or_raise(departure_id)
