"""Seat inventory Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class GetAvailabilityRequest(BaseModel):
    """Request schema for reading a departure's seat counter."""

    departure_id: UUID = Field(..., description="Departure to inspect")


class SeatAvailability(BaseModel):
    """Seat counter response schema."""

    departure_id: str = Field(..., description="Departure ID")
    total_capacity: int = Field(..., ge=1, description="Total seats")
    booked_seats: int = Field(..., ge=0, description="Seats held by confirmed, paid bookings")
    available_seats: int = Field(..., ge=0, description="Seats still available")
    is_active: bool = Field(..., description="Whether the departure accepts reservations")
