"""Departure-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.departure import DepartureStatus

PICKUP_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class Recurrence(str, Enum):
    """Date generation pattern for bulk creation."""
    DAILY = "daily"
    WEEKLY = "weekly"


class CreateDepartureRequest(BaseModel):
    """Request schema for creating a departure."""

    plan_id: UUID = Field(..., description="Plan this departure belongs to")
    departure_date: date = Field(..., description="Departure date (YYYY-MM-DD)")
    pickup_location: str = Field(..., min_length=1, max_length=255, description="Pickup point")
    pickup_time: str = Field(..., pattern=PICKUP_TIME_PATTERN, description="Pickup time (HH:MM)")
    total_capacity: int = Field(..., description="Total seats")


class BulkCreateDeparturesRequest(BaseModel):
    """Request schema for creating a series of departures."""

    plan_id: UUID = Field(..., description="Plan the departures belong to")
    start_date: date = Field(..., description="First candidate date (inclusive)")
    end_date: date = Field(..., description="Last candidate date (inclusive)")
    recurrence: Recurrence = Field(Recurrence.DAILY, description="Daily or weekly pattern")
    weekdays: List[int] = Field(
        default_factory=list,
        description="ISO weekdays for weekly recurrence, Monday=0 .. Sunday=6"
    )
    pickup_location: str = Field(..., min_length=1, max_length=255, description="Pickup point")
    pickup_time: str = Field(..., pattern=PICKUP_TIME_PATTERN, description="Pickup time (HH:MM)")
    total_capacity: int = Field(..., description="Total seats per departure")

    @model_validator(mode="after")
    def check_range(self) -> "BulkCreateDeparturesRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.recurrence == Recurrence.WEEKLY:
            if not self.weekdays:
                raise ValueError("weekdays are required for weekly recurrence")
            if any(day < 0 or day > 6 for day in self.weekdays):
                raise ValueError("weekdays must be between 0 (Monday) and 6 (Sunday)")
        return self


class ListDeparturesRequest(BaseModel):
    """Request schema for listing a plan's departures."""

    plan_id: UUID = Field(..., description="Plan whose departures are listed")


class GetDepartureRequest(BaseModel):
    """Request schema for getting a departure."""

    departure_id: UUID = Field(..., description="Departure to retrieve")


class UpdateDepartureRequest(BaseModel):
    """Request schema for updating a departure; omitted fields are left unchanged."""

    departure_id: UUID = Field(..., description="Departure to update")
    departure_date: Optional[date] = Field(None, description="New departure date")
    pickup_location: Optional[str] = Field(None, min_length=1, max_length=255, description="New pickup point")
    pickup_time: Optional[str] = Field(None, pattern=PICKUP_TIME_PATTERN, description="New pickup time")
    total_capacity: Optional[int] = Field(None, description="New total seats")
    status: Optional[DepartureStatus] = Field(None, description="New status")


class DeleteDepartureRequest(BaseModel):
    """Request schema for deleting a departure."""

    departure_id: UUID = Field(..., description="Departure to delete")


class CancelDepartureRequest(BaseModel):
    """Request schema for cancelling a departure and refunding its bookings."""

    departure_id: UUID = Field(..., description="Departure to cancel")
    reason: Optional[str] = Field(None, max_length=1000, description="Reason shown to travellers")


class Departure(BaseModel):
    """Departure response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique departure ID")
    plan_id: str = Field(..., description="Associated plan ID")
    departure_date: date = Field(..., description="Departure date")
    pickup_location: str = Field(..., description="Pickup point")
    pickup_time: str = Field(..., description="Pickup time (HH:MM)")
    total_capacity: int = Field(..., ge=1, description="Total seats")
    booked_seats: int = Field(..., ge=0, description="Seats held by confirmed, paid bookings")
    available_seats: int = Field(..., ge=0, description="Seats still available")
    status: DepartureStatus = Field(..., description="Departure status")
    is_active: bool = Field(..., description="Whether the departure accepts reservations")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation time")
    cancellation_reason: Optional[str] = Field(None, description="Cancellation reason")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")


class ListDeparturesResponse(BaseModel):
    """Departures of a plan, newest date first."""

    departures: List[Departure] = Field(..., description="Departures")


class BulkCreateError(BaseModel):
    """A date that could not be created."""

    departure_date: date = Field(..., description="Date that failed")
    error: str = Field(..., description="Why it failed")


class BulkCreateDeparturesResponse(BaseModel):
    """Result of a bulk creation."""

    requested: int = Field(..., ge=0, description="Dates generated from the pattern")
    created: int = Field(..., ge=0, description="Departures created")
    failed: int = Field(..., ge=0, description="Dates that failed")
    departures: List[Departure] = Field(..., description="Created departures")
    errors: List[BulkCreateError] = Field(..., description="Per-date failures")


class DeleteDepartureResponse(BaseModel):
    """Result of a deletion."""

    departure_id: str = Field(..., description="Deleted departure")
    deleted: bool = Field(..., description="Always true on success")


class RefundResultItem(BaseModel):
    """Outcome for one booking during a departure cancellation."""

    booking_id: str = Field(..., description="Booking")
    ok: bool = Field(..., description="Whether the refund was requested and the booking cancelled")
    reason: Optional[str] = Field(None, description="Failure reason")


class RefundSummary(BaseModel):
    """Aggregated refund outcomes."""

    total: int = Field(..., ge=0, description="Eligible bookings attempted")
    successful: int = Field(..., ge=0, description="Bookings refunded and cancelled")
    failed: int = Field(..., ge=0, description="Bookings left unchanged")
    errors: List[str] = Field(..., description="One message per failed booking")


class CancelDepartureResponse(BaseModel):
    """Result of cancelling a departure."""

    departure: Departure = Field(..., description="The cancelled departure")
    refund_results: RefundSummary = Field(..., description="Refund tally")
    items: List[RefundResultItem] = Field(..., description="Per-booking outcomes")
