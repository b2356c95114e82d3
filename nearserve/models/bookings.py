"""
Booking model - service reservations between customers and providers.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Numeric,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
    Enum as SQLEnum,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearserve.lib.db import Base


class BookingStatus(str, enum.Enum):
    """Booking status state machine."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# Directed edges a provider may drive a booking along.
# cancelled, completed and rejected have no outgoing edges.
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.REJECTED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.REJECTED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[current]


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class Booking(Base):
    """
    Booking entity - one customer, one service, and that service's provider.

    address JSON: {street, city, state, zip_code, landmark}
    contact JSON: {phone, alternate_phone}
    """
    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    service_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Customer who made the booking",
    )
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Schedule
    scheduled_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    scheduled_time: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    # Payment
    price: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False),
        nullable=False,
        comment="Snapshot of the service price at booking time",
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    # Notes
    customer_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    provider_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Where and who to contact
    address: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    contact: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Lifecycle stamps
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    service = relationship("Service", lazy="joined")
    customer = relationship("User", lazy="joined")
    provider = relationship("Provider", lazy="joined")

    __table_args__ = (
        CheckConstraint("price >= 0", name="booking_price_non_negative"),
        Index("ix_bookings_user_status", "user_id", "status"),
        Index("ix_bookings_provider_status", "provider_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, user_id={self.user_id})>"
