"""Booking model and status enumerations."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .departure import Departure


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundStatus(str, Enum):
    """Refund status enumeration."""
    NONE = "none"
    REQUESTED = "requested"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class VendorPayoutStatus(str, Enum):
    """Vendor payout status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Booking(Base):
    """A user's reservation of ``num_people`` seats on one departure."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Denormalized plan reference for vendor listings
    plan_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)

    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    num_people: Mapped[int] = mapped_column(Integer, nullable=False)

    # Lifecycle
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    booking_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.PENDING.value, index=True
    )
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # Bumped by every payment claim; later steps are guarded on the value they claimed
    payment_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Amounts in minor units
    trip_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # Refund tracking
    refund_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RefundStatus.NONE.value
    )
    refund_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    refund_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Vendor payout tracking
    vendor_payout_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VendorPayoutStatus.PENDING.value
    )
    vendor_payout_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("num_people > 0", name="ck_booking_num_people_positive"),
        CheckConstraint("trip_cost >= 0", name="ck_booking_trip_cost_non_negative"),
        CheckConstraint("platform_fee >= 0", name="ck_booking_platform_fee_non_negative"),
        CheckConstraint(
            "refund_percentage IS NULL OR (refund_percentage >= 0 AND refund_percentage <= 100)",
            name="ck_booking_refund_percentage_range"
        ),
        CheckConstraint("length(user_id) > 0", name="ck_booking_user_id_not_empty"),
        Index("ix_bookings_departure_status", "departure_id", "booking_status", "payment_status"),
    )

    departure: Mapped["Departure"] = relationship("Departure", back_populates="bookings")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, departure_id={self.departure_id}, "
            f"num_people={self.num_people}, booking_status={self.booking_status}, "
            f"payment_status={self.payment_status})>"
        )
