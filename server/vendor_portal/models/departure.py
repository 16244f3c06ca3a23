"""Departure model definition."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .plan import Plan


class DepartureStatus(str, Enum):
    """Departure status enumeration."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Departure(Base):
    """One scheduled occurrence of a plan with its own seat counter.

    ``booked_seats`` is only ever changed by the seat inventory service through
    a guarded update; the check constraints below are the last line that the
    guard never lets a write reach.
    """

    __tablename__ = "departures"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    plan_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    departure_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    pickup_location: Mapped[str] = mapped_column(String(255), nullable=False)
    pickup_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM

    # Seat inventory
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DepartureStatus.SCHEDULED.value,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Cancellation bookkeeping
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("total_capacity > 0", name="ck_departure_total_capacity_positive"),
        CheckConstraint("booked_seats >= 0", name="ck_departure_booked_seats_non_negative"),
        CheckConstraint("booked_seats <= total_capacity", name="ck_departure_booked_seats_lte_capacity"),
        CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'cancelled', 'completed')",
            name="ck_departure_status_valid"
        ),
    )

    plan: Mapped["Plan"] = relationship("Plan", back_populates="departures")
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="departure",
        cascade="all, delete-orphan"
    )

    @property
    def available_seats(self) -> int:
        return self.total_capacity - self.booked_seats

    def __repr__(self) -> str:
        return (
            f"<Departure(id={self.id}, plan_id={self.plan_id}, "
            f"date={self.departure_date}, seats={self.booked_seats}/{self.total_capacity}, "
            f"status={self.status})>"
        )
