"""Booking service for business logic operations."""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.conditional_store import conditional_update
from ..core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ProblemDetailsException,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.departure import DepartureStatus
from ..schemas.booking import CreateBookingRequest
from .booking_lifecycle import (
    BookingStatus,
    InvalidTransitionError,
    PaymentStatus,
    RefundStatus,
    VendorPayoutStatus,
    assert_booking_transition,
    assert_payment_transition,
    assert_refund_transition,
    awaiting_seats,
    full_refund,
    holds_seats,
)
from .departure_service import DepartureService, utc_today
from .seat_inventory_service import SeatInventoryService

logger = logging.getLogger(__name__)

TRAVELLER_CANCELLATION_REASON = "Cancelled by traveller"
DEPARTURE_CANCELLED_REASON = "Vendor cancelled departure"


class SeatsUnavailableError(ConflictError):
    """Exception when a departure cannot take the booking's seats."""

    def __init__(self, departure_id: str, requested_seats: int, available_seats: int):
        super().__init__(
            detail=f"Departure {departure_id} has insufficient capacity. Requested: {requested_seats}, Available: {available_seats}",
            conflicting_resource={
                "departure_id": departure_id,
                "requested_seats": requested_seats,
                "available_seats": available_seats
            }
        )
        self.problem_details.update({
            "code": "FULL",
            "retryable": False
        })


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departure_service = DepartureService(db)
        self.seat_inventory = SeatInventoryService(db)

    async def create_booking(self, request: CreateBookingRequest, user_id: str) -> Booking:
        """
        Create a pending booking for a departure.

        No seats are taken here; seats are reserved when the payment completes.
        The capacity check below only turns away requests that could never fit.

        Raises:
            NotFoundError: If the departure or plan is not found
            ValidationError: If the departure does not belong to the plan
            PreconditionFailedError: If the departure is cancelled or has left
            SeatsUnavailableError: If the departure cannot currently fit the party
        """
        departure = await self.departure_service.get_departure_by_id_or_raise(request.departure_id)

        if departure.plan_id != request.plan_id:
            raise ValidationError(
                "Departure does not belong to the given plan",
                errors={"plan_id": str(request.plan_id), "departure_id": str(request.departure_id)}
            )

        if not departure.is_active:
            raise PreconditionFailedError("Departure is cancelled", code="DEPARTURE_CANCELLED")

        if departure.departure_date <= utc_today():
            raise PreconditionFailedError("Departure has already left", code="DEPARTURE_PAST")

        if departure.available_seats < request.num_people:
            logger.warning(
                "Booking creation failed - insufficient capacity",
                extra={
                    "departure_id": str(departure.id),
                    "requested_seats": request.num_people,
                    "available_seats": departure.available_seats,
                }
            )
            raise SeatsUnavailableError(str(departure.id), request.num_people, departure.available_seats)

        plan = await self.departure_service.plan_service.get_plan_by_id_or_raise(departure.plan_id)
        trip_cost = plan.price_amount * request.num_people

        now = datetime.now(timezone.utc)
        booking = Booking(
            plan_id=departure.plan_id,
            departure_id=departure.id,
            user_id=user_id,
            num_people=request.num_people,
            payment_status=PaymentStatus.PENDING.value,
            booking_status=BookingStatus.PENDING.value,
            trip_cost=trip_cost,
            platform_fee=request.platform_fee,
            total_amount=trip_cost + request.platform_fee,
            refund_status=RefundStatus.NONE.value,
            vendor_payout_status=VendorPayoutStatus.PENDING.value,
            updated_at=now,
        )

        self.db.add(booking)
        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(booking.departure_id),
                "user_id": user_id,
                "num_people": booking.num_people,
                "total_amount": booking.total_amount,
            }
        )

        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """
        Get booking by ID or raise NotFoundError.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.get_booking_by_id(booking_id)

        if not booking:
            logger.warning("Booking not found", extra={"booking_id": str(booking_id)})
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

        return booking

    async def get_booking_for_actor(self, booking_id: UUID, actor_id: str, is_vendor: bool) -> Booking:
        """
        Get a booking visible to the caller: its traveller, or the vendor owning its plan.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller may not see the booking
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)

        if booking.user_id == actor_id:
            return booking

        if is_vendor:
            await self.departure_service.plan_service.get_owned_plan_or_raise(booking.plan_id, actor_id)
            return booking

        raise AuthorizationError("You do not have access to this booking")

    async def list_bookings_by_departure(self, departure_id: UUID, vendor_id: str) -> list[Booking]:
        """List a departure's bookings for the vendor that owns it, newest first."""
        await self.departure_service.get_departure_for_vendor(departure_id, vendor_id)

        stmt = (
            select(Booking)
            .where(Booking.departure_id == departure_id)
            .order_by(Booking.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def list_bookings_by_user(self, user_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def complete_payment(self, booking_id: UUID, payment_reference: Optional[str] = None) -> Booking:
        """
        Record a completed payment and reserve the booking's seats.

        The payment is claimed first with a guarded write that bumps
        ``payment_attempts``, so of several concurrent callbacks for the same
        booking exactly one owns the attempt; the later steps only apply for
        the attempt that claimed them. The booking only becomes confirmed after
        the reservation committed; if it was cancelled or re-claimed in
        between, the seats are handed back.

        A booking left paid but still pending (the reservation never ran, for
        example because the store was unavailable) is resumed at the
        reservation step on the next call.

        Returns:
            The confirmed booking (unchanged if it was already confirmed)

        Raises:
            NotFoundError: If booking not found
            InvalidTransitionError: If the booking is not awaiting payment
            PreconditionFailedError: If the departure has already left
            SeatsUnavailableError: If the departure is full or no longer active
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)

        if holds_seats(booking):
            logger.info(
                "Payment already completed for booking",
                extra={"booking_id": str(booking_id)}
            )
            return booking

        if awaiting_seats(booking):
            logger.info(
                "Resuming paid booking at seat reservation",
                extra={"booking_id": str(booking_id), "payment_attempts": booking.payment_attempts}
            )
        else:
            assert_payment_transition(booking.payment_status, PaymentStatus.COMPLETED, str(booking_id))
            assert_booking_transition(booking.booking_status, BookingStatus.CONFIRMED, str(booking_id))
            await self._ensure_departure_not_left(booking)

        attempt = await self._claim_payment(booking, payment_reference)
        return await self._reserve_and_confirm(booking, attempt)

    async def _ensure_departure_not_left(self, booking: Booking) -> None:
        departure = await self.departure_service.get_departure_by_id_or_raise(booking.departure_id)
        if departure.departure_date <= utc_today() or departure.status == DepartureStatus.COMPLETED.value:
            logger.warning(
                "Payment rejected - departure has already left",
                extra={"booking_id": str(booking.id), "departure_id": str(departure.id)}
            )
            raise PreconditionFailedError("Departure has already left", code="DEPARTURE_PAST")

    async def _claim_payment(self, booking: Booking, payment_reference: Optional[str]) -> int:
        values = {
            "payment_status": PaymentStatus.COMPLETED.value,
            "payment_attempts": Booking.payment_attempts + 1,
            "updated_at": datetime.now(timezone.utc),
        }
        if payment_reference:
            values["payment_reference"] = payment_reference

        claim = await conditional_update(
            self.db,
            Booking,
            booking.id,
            values,
            and_(
                Booking.payment_status == booking.payment_status,
                Booking.booking_status == BookingStatus.PENDING.value,
                Booking.payment_attempts == booking.payment_attempts,
            ),
        )
        if not claim.applied:
            raise self._transition_conflict(claim.current, booking.id, "payment_status", PaymentStatus.COMPLETED)

        return claim.current["payment_attempts"]

    async def _reserve_and_confirm(self, booking: Booking, attempt: int) -> Booking:
        owns_attempt = Booking.payment_attempts == attempt
        reserved = await self.seat_inventory.reserve_or_release(booking.departure_id, booking.num_people)

        if not reserved:
            failed = await conditional_update(
                self.db,
                Booking,
                booking.id,
                {
                    "booking_status": BookingStatus.FAILED.value,
                    "refund_status": RefundStatus.REQUESTED.value,
                    "updated_at": datetime.now(timezone.utc),
                },
                and_(Booking.booking_status == BookingStatus.PENDING.value, owns_attempt),
            )
            if not failed.applied:
                # Cancelled or re-claimed meanwhile; the other party decides the outcome
                return await self.get_booking_by_id_or_raise(booking.id)

            metrics_collector.record_booking_failed_full()

            departure = await self.departure_service.get_departure_by_id(booking.departure_id)
            available = departure.available_seats if departure and departure.is_active else 0
            logger.warning(
                "Paid booking failed - seats unavailable",
                extra={
                    "booking_id": str(booking.id),
                    "departure_id": str(booking.departure_id),
                    "requested_seats": booking.num_people,
                    "available_seats": available,
                }
            )
            raise SeatsUnavailableError(str(booking.departure_id), booking.num_people, available)

        confirm = await conditional_update(
            self.db,
            Booking,
            booking.id,
            {"booking_status": BookingStatus.CONFIRMED.value, "updated_at": datetime.now(timezone.utc)},
            and_(Booking.booking_status == BookingStatus.PENDING.value, owns_attempt),
        )

        if not confirm.applied:
            # Cancelled or re-claimed between the payment claim and the reservation
            released = await self.seat_inventory.reserve_or_release(booking.departure_id, -booking.num_people)
            if not released:
                self._log_release_rejected(booking, "payment_compensation")
            logger.warning(
                "Booking changed while payment was being completed; seats returned",
                extra={"booking_id": str(booking.id), "departure_id": str(booking.departure_id)}
            )
            return await self.get_booking_by_id_or_raise(booking.id)

        metrics_collector.record_booking_confirmed()
        logger.info(
            "Booking confirmed",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(booking.departure_id),
                "num_people": booking.num_people,
            }
        )

        departure = await self.departure_service.get_departure_by_id(booking.departure_id)
        if departure is not None and not departure.is_active:
            # The vendor cancelled the departure after the reservation went through
            await self._cancel_for_cancelled_departure(booking)

        return await self.get_booking_by_id_or_raise(booking.id)

    async def _cancel_for_cancelled_departure(self, booking: Booking) -> None:
        terms = full_refund(booking)
        now = datetime.now(timezone.utc)
        result = await conditional_update(
            self.db,
            Booking,
            booking.id,
            {
                "booking_status": BookingStatus.CANCELLED.value,
                "refund_status": RefundStatus.REQUESTED.value,
                "refund_percentage": terms.percentage,
                "refund_amount": terms.amount,
                "vendor_payout_amount": terms.vendor_payout_amount,
                "cancelled_at": now,
                "cancellation_reason": DEPARTURE_CANCELLED_REASON,
                "updated_at": now,
            },
            and_(
                Booking.booking_status == BookingStatus.CONFIRMED.value,
                Booking.payment_status == PaymentStatus.COMPLETED.value,
            ),
        )
        if not result.applied:
            # Already refunded and cancelled by the departure cancellation
            return

        released = await self.seat_inventory.reserve_or_release(booking.departure_id, -booking.num_people)
        if not released:
            self._log_release_rejected(booking, "departure_cancelled_after_payment")

        metrics_collector.record_booking_cancelled("vendor")
        logger.warning(
            "Booking confirmed on a cancelled departure; cancelled with full refund requested",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(booking.departure_id),
                "refund_amount": terms.amount,
            }
        )

    async def fail_payment(self, booking_id: UUID) -> Booking:
        """
        Record a failed payment. No seats are involved.

        Raises:
            NotFoundError: If booking not found
            InvalidTransitionError: If the booking is not awaiting payment
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)

        assert_payment_transition(booking.payment_status, PaymentStatus.FAILED, str(booking_id))
        assert_booking_transition(booking.booking_status, BookingStatus.FAILED, str(booking_id))

        result = await conditional_update(
            self.db,
            Booking,
            booking_id,
            {
                "payment_status": PaymentStatus.FAILED.value,
                "booking_status": BookingStatus.FAILED.value,
                "updated_at": datetime.now(timezone.utc),
            },
            and_(
                Booking.payment_status == PaymentStatus.PENDING.value,
                Booking.booking_status == BookingStatus.PENDING.value,
            ),
        )
        if not result.applied:
            raise self._transition_conflict(result.current, booking_id, "payment_status", PaymentStatus.FAILED)

        logger.info("Booking payment failed", extra={"booking_id": str(booking_id)})
        return await self.get_booking_by_id_or_raise(booking_id)

    async def cancel_booking(self, booking_id: UUID, actor_id: str, reason: Optional[str] = None) -> Booking:
        """
        Cancel a booking on behalf of its traveller.

        The transition is claimed against the exact status that was read, so
        only one concurrent canceller proceeds, and seats are released only
        when the claimed state was holding them. A paid booking is flagged
        for refund; the refund share is decided by the payments platform.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller does not own the booking
            InvalidTransitionError: If the booking is completed or failed
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)

        if booking.user_id != actor_id:
            logger.warning(
                "Booking cancellation denied - not the owner",
                extra={"booking_id": str(booking_id), "actor_id": actor_id}
            )
            raise AuthorizationError("You can only cancel your own bookings")

        if booking.booking_status == BookingStatus.CANCELLED.value:
            logger.info("Booking already cancelled", extra={"booking_id": str(booking_id)})
            return booking

        assert_booking_transition(booking.booking_status, BookingStatus.CANCELLED, str(booking_id))

        had_seats = holds_seats(booking)
        now = datetime.now(timezone.utc)
        values = {
            "booking_status": BookingStatus.CANCELLED.value,
            "cancelled_at": now,
            "cancellation_reason": reason or TRAVELLER_CANCELLATION_REASON,
            "updated_at": now,
        }
        paid = booking.payment_status == PaymentStatus.COMPLETED.value
        if paid and booking.refund_status == RefundStatus.NONE.value:
            values["refund_status"] = RefundStatus.REQUESTED.value

        claim = await conditional_update(
            self.db,
            Booking,
            booking_id,
            values,
            and_(
                Booking.booking_status == booking.booking_status,
                Booking.payment_status == booking.payment_status,
            ),
        )

        if not claim.applied:
            current = claim.current
            if current and current["booking_status"] == BookingStatus.CANCELLED.value:
                return await self.get_booking_by_id_or_raise(booking_id)
            raise self._transition_conflict(current, booking_id, "booking_status", BookingStatus.CANCELLED)

        if had_seats:
            released = await self.seat_inventory.reserve_or_release(booking.departure_id, -booking.num_people)
            if not released:
                self._log_release_rejected(booking, "booking_cancel")

        metrics_collector.record_booking_cancelled("traveller")
        logger.info(
            "Booking cancelled by traveller",
            extra={
                "booking_id": str(booking_id),
                "departure_id": str(booking.departure_id),
                "released_seats": booking.num_people if had_seats else 0,
                "refund_requested": "refund_status" in values,
            }
        )

        return await self.get_booking_by_id_or_raise(booking_id)

    async def update_refund_status(
        self,
        booking_id: UUID,
        refund_status: RefundStatus,
        refund_reference: Optional[str] = None,
    ) -> Booking:
        """
        Apply a refund progress callback from the payments platform.

        Raises:
            NotFoundError: If booking not found
            InvalidTransitionError: If the refund cannot move to ``refund_status``
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        target = RefundStatus(refund_status)

        if booking.refund_status == target.value:
            return booking

        assert_refund_transition(booking.refund_status, target, str(booking_id))

        values = {"refund_status": target.value, "updated_at": datetime.now(timezone.utc)}
        if refund_reference:
            values["refund_reference"] = refund_reference
        if target == RefundStatus.COMPLETED:
            values["refund_date"] = datetime.now(timezone.utc)

        result = await conditional_update(
            self.db, Booking, booking_id, values, Booking.refund_status == booking.refund_status
        )
        if not result.applied:
            raise self._transition_conflict(result.current, booking_id, "refund_status", target)

        logger.info(
            "Refund status updated",
            extra={
                "booking_id": str(booking_id),
                "from_status": booking.refund_status,
                "to_status": target.value,
            }
        )

        return await self.get_booking_by_id_or_raise(booking_id)

    async def complete_booking(self, booking_id: UUID) -> Booking:
        """
        Mark a confirmed booking as completed once its trip has taken place.

        Raises:
            NotFoundError: If booking not found
            InvalidTransitionError: If the booking is not confirmed
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        assert_booking_transition(booking.booking_status, BookingStatus.COMPLETED, str(booking_id))

        result = await conditional_update(
            self.db,
            Booking,
            booking_id,
            {"booking_status": BookingStatus.COMPLETED.value, "updated_at": datetime.now(timezone.utc)},
            Booking.booking_status == BookingStatus.CONFIRMED.value,
        )
        if not result.applied:
            raise self._transition_conflict(result.current, booking_id, "booking_status", BookingStatus.COMPLETED)

        return await self.get_booking_by_id_or_raise(booking_id)

    def _transition_conflict(self, current, booking_id: UUID, field: str, target) -> ProblemDetailsException:
        if current is None:
            return NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return InvalidTransitionError(field, current[field], target.value, str(booking_id))

    def _log_release_rejected(self, booking: Booking, source: str) -> None:
        metrics_collector.record_seat_release_rejected(source)
        logger.error(
            "Seat release rejected for a booking that held seats",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(booking.departure_id),
                "num_people": booking.num_people,
                "source": source,
            }
        )
