"""Booking lifecycle rules: allowed status transitions and refund terms.

The status enums live with the model (``models.booking``); this module owns
which moves between them are legal. Services call the ``assert_*`` helpers
before writing, and additionally guard the write itself on the expected
current status so two racing transitions cannot both win.
"""

from dataclasses import dataclass
from typing import Mapping

from ..core.exceptions import ConflictError
from ..models.booking import Booking, BookingStatus, PaymentStatus, RefundStatus, VendorPayoutStatus

__all__ = [
    "BOOKING_TRANSITIONS",
    "BookingStatus",
    "InvalidTransitionError",
    "PAYMENT_TRANSITIONS",
    "PaymentStatus",
    "REFUND_TRANSITIONS",
    "RefundStatus",
    "RefundTerms",
    "SEAT_HOLDING_STATUSES",
    "VendorPayoutStatus",
    "assert_booking_transition",
    "assert_payment_transition",
    "assert_refund_transition",
    "awaiting_seats",
    "full_refund",
    "holds_seats",
]


BOOKING_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.FAILED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.FAILED: frozenset(),
}

PAYMENT_TRANSITIONS: Mapping[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

REFUND_TRANSITIONS: Mapping[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.NONE: frozenset({RefundStatus.REQUESTED, RefundStatus.PROCESSING, RefundStatus.REJECTED}),
    RefundStatus.REQUESTED: frozenset({RefundStatus.PROCESSING, RefundStatus.REJECTED}),
    RefundStatus.PROCESSING: frozenset({RefundStatus.COMPLETED, RefundStatus.REJECTED}),
    RefundStatus.COMPLETED: frozenset(),
    RefundStatus.REJECTED: frozenset(),
}


class InvalidTransitionError(ConflictError):
    """Exception when a status change is not allowed from the current state."""

    def __init__(self, field: str, current: str, target: str, booking_id: str | None = None):
        super().__init__(
            detail=f"Cannot change {field} from '{current}' to '{target}'"
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
            "field": field,
            "current": current,
            "target": target,
        })
        if booking_id:
            self.problem_details["booking_id"] = booking_id


def _assert(table, enum_cls, field: str, current, target, booking_id: str | None) -> None:
    current = enum_cls(current)
    target = enum_cls(target)
    if target not in table[current]:
        raise InvalidTransitionError(field, current.value, target.value, booking_id)


def assert_booking_transition(current, target, booking_id: str | None = None) -> None:
    _assert(BOOKING_TRANSITIONS, BookingStatus, "booking_status", current, target, booking_id)


def assert_payment_transition(current, target, booking_id: str | None = None) -> None:
    _assert(PAYMENT_TRANSITIONS, PaymentStatus, "payment_status", current, target, booking_id)


def assert_refund_transition(current, target, booking_id: str | None = None) -> None:
    _assert(REFUND_TRANSITIONS, RefundStatus, "refund_status", current, target, booking_id)


SEAT_HOLDING_STATUSES = frozenset({BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value})


def holds_seats(booking: Booking) -> bool:
    """True when the booking's seats are counted in its departure's ``booked_seats``."""
    return (
        booking.booking_status in SEAT_HOLDING_STATUSES
        and booking.payment_status == PaymentStatus.COMPLETED.value
    )


def awaiting_seats(booking: Booking) -> bool:
    """True for a booking whose payment was claimed but whose seats were never confirmed."""
    return (
        booking.booking_status == BookingStatus.PENDING.value
        and booking.payment_status == PaymentStatus.COMPLETED.value
    )


@dataclass(frozen=True)
class RefundTerms:
    """Refund applied to a booking when it is cancelled."""

    percentage: int
    amount: int
    vendor_payout_amount: int


def full_refund(booking: Booking) -> RefundTerms:
    """Vendor-initiated cancellation: the traveller gets the whole trip cost back."""
    return RefundTerms(percentage=100, amount=booking.trip_cost, vendor_payout_amount=0)
