"""
Service model - bookable offerings listed by providers.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Numeric,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
    Enum as SQLEnum,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearserve.lib.db import Base


class ServiceCategory(str, enum.Enum):
    """Service category enumeration (shared with provider profiles)."""
    PLUMBER = "plumber"
    ELECTRICIAN = "electrician"
    MECHANIC = "mechanic"
    CARPENTER = "carpenter"
    PAINTER = "painter"
    CLEANER = "cleaner"
    GARDENER = "gardener"
    OTHER = "other"


class PriceType(str, enum.Enum):
    """How the price is charged."""
    HOURLY = "hourly"
    FIXED = "fixed"
    PER_VISIT = "per-visit"


class Service(Base):
    """
    Service entity - owned by exactly one provider.
    location JSON: {address, city, state, zip_code, coordinates: {latitude, longitude}}
    """
    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Listing details
    title: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    category: Mapped[ServiceCategory] = mapped_column(
        SQLEnum(ServiceCategory, name="service_category", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    # Pricing
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    price_type: Mapped[PriceType] = mapped_column(
        SQLEnum(PriceType, name="price_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PriceType.HOURLY,
    )

    # Location
    location: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    city: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Denormalized from location.city for filtering",
    )
    service_area: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=10,
        comment="Service radius in kilometers",
    )

    # Media
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    business_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Rolling rating, recomputed from reviews
    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Status
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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

    provider = relationship("Provider", back_populates="services")

    __table_args__ = (
        CheckConstraint("price >= 0", name="service_price_non_negative"),
        CheckConstraint("service_area >= 1 AND service_area <= 100", name="service_area_range"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, title={self.title}, category={self.category})>"
