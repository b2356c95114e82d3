"""
Provider availability overlay: weekly recurring slots, one-off holidays and breaks.

Times are "HH:MM" (24h) strings and dates are "YYYY-MM-DD" strings, which keeps
lexical and chronological order identical.
"""
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, ForeignKey, Uuid, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearserve.lib.db import Base


TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class Weekday(str, enum.Enum):
    """Weekday names, Monday first (matches date.weekday())."""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        return list(cls)[index]


class WeeklyAvailability(Base):
    """
    One entry per provider and weekday, created on demand and removed
    when its last slot is deleted.
    """
    __tablename__ = "weekly_availability"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day: Mapped[Weekday] = mapped_column(
        SQLEnum(Weekday, name="weekday", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    provider = relationship("Provider", back_populates="weekly_availability")
    slots = relationship(
        "AvailabilitySlot",
        back_populates="day_entry",
        cascade="all, delete-orphan",
        order_by="AvailabilitySlot.position",
        collection_class=ordering_list("position"),
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("provider_id", "day", name="uq_weekly_availability_provider_day"),
    )

    def __repr__(self) -> str:
        return f"<WeeklyAvailability(provider_id={self.provider_id}, day={self.day}, slots={len(self.slots)})>"


class AvailabilitySlot(Base):
    """A bookable window inside a weekday. start < end is not enforced."""
    __tablename__ = "availability_slots"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    day_entry_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("weekly_availability.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start: Mapped[str] = mapped_column(String(5), nullable=False)
    end: Mapped[str] = mapped_column(String(5), nullable=False)

    day_entry = relationship("WeeklyAvailability", back_populates="slots")


class Holiday(Base):
    """Whole-day closure. At most one per provider and date."""
    __tablename__ = "holidays"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)

    provider = relationship("Provider", back_populates="holidays")

    __table_args__ = (
        UniqueConstraint("provider_id", "date", name="uq_holiday_provider_date"),
    )


class Break(Base):
    """Time-boxed pause on a given date. Not deduplicated."""
    __tablename__ = "breaks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    start: Mapped[str] = mapped_column(String(5), nullable=False)
    end: Mapped[str] = mapped_column(String(5), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    provider = relationship("Provider", back_populates="breaks")
