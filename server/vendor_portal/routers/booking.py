"""Booking router for the booking lifecycle."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession, PaymentsAuth, RequiredAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException, ValidationError
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CompletePaymentRequest,
    CreateBookingRequest,
    FailPaymentRequest,
    GetBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
    UpdateRefundStatusRequest,
)
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        plan_id=str(booking_model.plan_id),
        departure_id=str(booking_model.departure_id),
        user_id=booking_model.user_id,
        num_people=booking_model.num_people,
        booking_status=booking_model.booking_status,
        payment_status=booking_model.payment_status,
        trip_cost=booking_model.trip_cost,
        platform_fee=booking_model.platform_fee,
        total_amount=booking_model.total_amount,
        refund_status=booking_model.refund_status,
        refund_percentage=booking_model.refund_percentage,
        refund_amount=booking_model.refund_amount,
        refund_date=booking_model.refund_date,
        cancelled_at=booking_model.cancelled_at,
        cancellation_reason=booking_model.cancellation_reason,
        vendor_payout_status=booking_model.vendor_payout_status,
        vendor_payout_amount=booking_model.vendor_payout_amount,
        created_at=booking_model.created_at,
    )


def _ok(booking_model) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking_model).model_dump(mode="json")
    )


@router.post("/create", response_model=Booking)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = RequiredAuth,
) -> JSONResponse:
    """Create a pending booking. Seats are reserved once payment completes."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.create_booking(request, actor.user_id)
        return _ok(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={
                "departure_id": str(request.departure_id),
                "user_id": actor.user_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/complete-payment", response_model=Booking)
async def complete_payment(
    request: CompletePaymentRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = PaymentsAuth,
) -> JSONResponse:
    """
    Payments callback: the booking was paid.

    Reserves the booking's seats and confirms it. Returns 409 with code FULL
    when the departure can no longer take the party; the booking is then
    failed and flagged for refund. Returns 400 with code DEPARTURE_PAST when
    the departure has already left. Repeating the call is harmless, and a
    booking left paid but unconfirmed is finished by the next call.
    """
    booking_service = BookingService(db)

    try:
        booking = await booking_service.complete_payment(request.booking_id, request.payment_reference)
        return _ok(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment completion",
            extra={"booking_id": str(request.booking_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/fail-payment", response_model=Booking)
async def fail_payment(
    request: FailPaymentRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = PaymentsAuth,
) -> JSONResponse:
    """Payments callback: the payment failed."""
    booking_service = BookingService(db)

    booking = await booking_service.fail_payment(request.booking_id)
    return _ok(booking)


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = RequiredAuth,
) -> JSONResponse:
    """Cancel the caller's own booking, releasing its seats if it held any."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.cancel_booking(request.booking_id, actor.user_id, request.reason)
        return _ok(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={"booking_id": str(request.booking_id), "user_id": actor.user_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/refund-status", response_model=Booking)
async def update_refund_status(
    request: UpdateRefundStatusRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = PaymentsAuth,
) -> JSONResponse:
    """Payments callback: refund progress for a booking."""
    booking_service = BookingService(db)

    booking = await booking_service.update_refund_status(
        request.booking_id, request.refund_status, request.refund_reference
    )
    return _ok(booking)


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = RequiredAuth,
) -> JSONResponse:
    """Get a booking as its traveller or as the vendor owning its plan."""
    booking_service = BookingService(db)

    booking = await booking_service.get_booking_for_actor(request.booking_id, actor.user_id, actor.is_vendor)
    return _ok(booking)


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DatabaseSession,
    actor: Actor = RequiredAuth,
) -> JSONResponse:
    """
    List bookings.

    Vendors list a departure's bookings by passing ``departure_id``;
    travellers list their own bookings.
    """
    booking_service = BookingService(db)

    if actor.is_vendor:
        if request.departure_id is None:
            raise ValidationError("departure_id is required for vendors", errors={"departure_id": None})
        bookings = await booking_service.list_bookings_by_departure(request.departure_id, actor.user_id)
    else:
        bookings = await booking_service.list_bookings_by_user(actor.user_id)

    response_data = ListBookingsResponse(bookings=[_convert_booking_to_schema(b) for b in bookings])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
