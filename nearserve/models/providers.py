"""
Provider model - extends User for service providers.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, Integer, Float, Boolean, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearserve.lib.db import Base


class Provider(Base):
    """
    Provider entity - business profile of a provider user (1:1 with User).

    contact_info JSON: {phone, alternate_phone, email, website}
    address JSON: {street, city, state, zip_code, coordinates: {latitude, longitude}}
    """
    __tablename__ = "providers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Business profile
    business_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    profile_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    cover_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    contact_info: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    address: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    experience_years: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    experience_description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    certifications: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Aggregate rating, recomputed from reviews
    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Booking counters, incremented atomically
    total_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancelled_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Availability master switch
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Verification
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

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

    user = relationship("User", lazy="joined")
    services = relationship("Service", back_populates="provider", cascade="all, delete-orphan")
    weekly_availability = relationship(
        "WeeklyAvailability",
        back_populates="provider",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    holidays = relationship(
        "Holiday",
        back_populates="provider",
        cascade="all, delete-orphan",
        order_by="Holiday.date",
        lazy="selectin",
    )
    breaks = relationship(
        "Break",
        back_populates="provider",
        cascade="all, delete-orphan",
        order_by="Break.date",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, user_id={self.user_id}, rating={self.rating_average})>"
