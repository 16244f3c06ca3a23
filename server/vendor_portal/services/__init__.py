"""Service layer package."""

from .booking_service import BookingService
from .departure_cancellation_service import DepartureCancellationService
from .departure_service import DepartureService
from .plan_service import PlanService
from .refund_client import HttpRefundClient, RefundService
from .seat_inventory_service import SeatInventoryService

__all__ = [
    "BookingService",
    "DepartureCancellationService",
    "DepartureService",
    "HttpRefundClient",
    "PlanService",
    "RefundService",
    "SeatInventoryService",
]
