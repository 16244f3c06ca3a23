"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import BookingStatus, PaymentStatus, RefundStatus, VendorPayoutStatus


class CreateBookingRequest(BaseModel):
    """Request schema for creating a pending booking."""

    plan_id: UUID = Field(..., description="Plan being booked")
    departure_id: UUID = Field(..., description="Departure to book seats on")
    num_people: int = Field(..., ge=1, le=100, description="Number of travellers")
    platform_fee: int = Field(0, ge=0, description="Platform fee in minor units")


class CompletePaymentRequest(BaseModel):
    """Payment callback: the booking was paid."""

    booking_id: UUID = Field(..., description="Paid booking")
    payment_reference: Optional[str] = Field(None, max_length=128, description="Payment provider reference")


class FailPaymentRequest(BaseModel):
    """Payment callback: the payment failed."""

    booking_id: UUID = Field(..., description="Booking whose payment failed")


class CancelBookingRequest(BaseModel):
    """Request schema for a traveller cancelling their booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=1000, description="Cancellation reason")


class UpdateRefundStatusRequest(BaseModel):
    """Payments platform callback reporting refund progress."""

    booking_id: UUID = Field(..., description="Booking being refunded")
    refund_status: RefundStatus = Field(..., description="New refund status")
    refund_reference: Optional[str] = Field(None, max_length=128, description="Refund provider reference")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: UUID = Field(..., description="Booking to retrieve")


class ListBookingsRequest(BaseModel):
    """List bookings of a departure (vendor) or of the caller (traveller)."""

    departure_id: Optional[UUID] = Field(None, description="Departure whose bookings are listed")


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique booking ID")
    plan_id: str = Field(..., description="Booked plan")
    departure_id: str = Field(..., description="Booked departure")
    user_id: str = Field(..., description="Traveller")
    num_people: int = Field(..., ge=1, description="Number of travellers")
    booking_status: BookingStatus = Field(..., description="Booking status")
    payment_status: PaymentStatus = Field(..., description="Payment status")
    trip_cost: int = Field(..., ge=0, description="Trip cost in minor units")
    platform_fee: int = Field(..., ge=0, description="Platform fee in minor units")
    total_amount: int = Field(..., ge=0, description="Amount charged in minor units")
    refund_status: RefundStatus = Field(..., description="Refund status")
    refund_percentage: Optional[int] = Field(None, description="Refunded share of the trip cost")
    refund_amount: Optional[int] = Field(None, description="Refund in minor units")
    refund_date: Optional[datetime] = Field(None, description="When the refund completed")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation time")
    cancellation_reason: Optional[str] = Field(None, description="Cancellation reason")
    vendor_payout_status: VendorPayoutStatus = Field(..., description="Vendor payout status")
    vendor_payout_amount: Optional[int] = Field(None, description="Vendor payout in minor units")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")


class ListBookingsResponse(BaseModel):
    """Bookings, newest first."""

    bookings: List[Booking] = Field(..., description="Bookings")
