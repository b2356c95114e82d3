"""
Notification model - in-app messages addressed to a single user.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Boolean, DateTime, ForeignKey, JSON, Uuid, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from nearserve.lib.db import Base


class NotificationType(str, enum.Enum):
    """Closed set of event tags a notification can carry."""
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_IN_PROGRESS = "booking_in_progress"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_REJECTED = "booking_rejected"
    REVIEW_RECEIVED = "review_received"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_PENDING = "payment_pending"
    MESSAGE_RECEIVED = "message_received"
    PROFILE_UPDATED = "profile_updated"
    SERVICE_APPROVED = "service_approved"
    SERVICE_REJECTED = "service_rejected"
    SYSTEM_ALERT = "system_alert"
    PROMOTIONAL = "promotional"


class NotificationPriority(str, enum.Enum):
    """Notification priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RelatedKind(str, enum.Enum):
    """Entity kinds a notification may point at."""
    BOOKING = "Booking"
    SERVICE = "Service"
    REVIEW = "Review"
    PROVIDER = "Provider"
    USER = "User"


@dataclass(frozen=True)
class RelatedRef:
    """Tagged reference to the entity a notification is about."""
    kind: RelatedKind
    id: UUID


class Notification(Base):
    """
    Notification entity.
    related_kind/related_id are stored side by side and exposed as a RelatedRef.
    """
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, name="notification_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)

    # Tagged reference
    related_kind: Mapped[Optional[RelatedKind]] = mapped_column(
        SQLEnum(RelatedKind, name="notification_related_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    related_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    priority: Mapped[NotificationPriority] = mapped_column(
        SQLEnum(NotificationPriority, name="notification_priority", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=NotificationPriority.MEDIUM,
    )

    # Read state
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Presentation extras
    action_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Time-to-live; swept by the expiry job
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "is_read", "created_at"),
    )

    @property
    def related(self) -> Optional[RelatedRef]:
        if self.related_kind is None or self.related_id is None:
            return None
        return RelatedRef(kind=self.related_kind, id=self.related_id)

    @related.setter
    def related(self, ref: Optional[RelatedRef]) -> None:
        self.related_kind = ref.kind if ref else None
        self.related_id = ref.id if ref else None

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type}, is_read={self.is_read})>"
