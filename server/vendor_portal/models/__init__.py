"""Models module exporting all database models."""

from .booking import Booking, BookingStatus, PaymentStatus, RefundStatus, VendorPayoutStatus
from .departure import Departure, DepartureStatus
from .plan import Plan

__all__ = [
    # Catalogue
    "Plan",
    "Departure",
    "DepartureStatus",

    # Bookings
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "RefundStatus",
    "VendorPayoutStatus",
]
