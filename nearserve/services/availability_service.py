"""
Provider availability service.

A provider's availability is an overlay of three things:
- weekly recurring slots, one entry per weekday holding ordered (start, end) windows
- holidays, which close a whole date
- breaks, which close a time window on a date

Mutations are restricted to the user who owns the provider profile.
"""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from nearserve.lib.logging import get_logger
from nearserve.models.availability import (
    DATE_PATTERN,
    TIME_PATTERN,
    AvailabilitySlot,
    Break,
    Holiday,
    WeeklyAvailability,
    Weekday,
)
from nearserve.models.providers import Provider
from nearserve.models.users import User
from nearserve.services.provider_service import ProviderService


logger = get_logger(__name__)

_TIME_RE = re.compile(TIME_PATTERN)
_DATE_RE = re.compile(DATE_PATTERN)


def to_minutes(hhmm: str) -> int:
    """"9:30" -> 570. Slots may be stored with or without a leading zero."""
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _check_time(field: str, value: str) -> None:
    if not value or not _TIME_RE.match(value):
        raise ValidationException(
            "Invalid time format",
            errors={field: "Time must be in HH:MM format"},
        )


def _check_date(value: str) -> None:
    if not value or not _DATE_RE.match(value):
        raise ValidationException(
            "Invalid date format",
            errors={"date": "Date must be in YYYY-MM-DD format"},
        )
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationException(
            "Invalid date",
            errors={"date": f"{value} is not a calendar date"},
        )


@dataclass(frozen=True)
class Bookability:
    """Answer to "can this provider be booked at T?"."""
    bookable: bool
    reason: Optional[str] = None


class AvailabilityService:
    """Read and edit a provider's availability overlay."""

    def __init__(self, session: Session):
        self.session = session
        self.providers = ProviderService(session)

    # Reads

    def get(self, provider_id: UUID) -> Provider:
        """Provider with weekly_availability, holidays and breaks loaded."""
        return self.providers.get(provider_id)

    @staticmethod
    def weekly_map(provider: Provider) -> Dict[str, List[AvailabilitySlot]]:
        """{weekday: [slot, ...]} in Monday-first order, only days with an entry."""
        entries = {entry.day: entry for entry in provider.weekly_availability}
        return {
            day.value: list(entries[day].slots)
            for day in Weekday
            if day in entries
        }

    def is_bookable(self, provider_id: UUID, at: datetime) -> Bookability:
        """
        Whether `at` (provider wall-clock time) is bookable.

        True only when the provider is available, the date is not a holiday,
        the time falls inside one of that weekday's slots and outside every
        break on that date. Windows are start-inclusive, end-exclusive.
        """
        provider = self.providers.get(provider_id)
        if not provider.is_available:
            return Bookability(False, "provider_unavailable")

        date_str = at.date().isoformat()
        if any(holiday.date == date_str for holiday in provider.holidays):
            return Bookability(False, "holiday")

        minute = at.hour * 60 + at.minute
        day = Weekday.from_index(at.weekday())
        entry = next((e for e in provider.weekly_availability if e.day == day), None)
        slots = entry.slots if entry else []
        if not any(to_minutes(s.start) <= minute < to_minutes(s.end) for s in slots):
            return Bookability(False, "outside_working_hours")

        for brk in provider.breaks:
            if brk.date == date_str and to_minutes(brk.start) <= minute < to_minutes(brk.end):
                return Bookability(False, "on_break")

        return Bookability(True)

    # Weekly slots

    def replace(
        self,
        provider_id: UUID,
        user: User,
        weekly: Optional[Dict[Weekday, List[Tuple[str, str]]]] = None,
        is_available: Optional[bool] = None,
    ) -> Provider:
        """
        Replace the whole weekly map and/or toggle is_available.

        Only supplied arguments are applied. Days mapped to an empty list
        get no entry.
        """
        provider = self.providers.get_owned(provider_id, user)

        if weekly is not None:
            for day, windows in weekly.items():
                for start, end in windows:
                    _check_time(f"{Weekday(day).value}.start", start)
                    _check_time(f"{Weekday(day).value}.end", end)

            provider.weekly_availability.clear()
            # Old rows must be gone before new ones reuse (provider_id, day)
            self.session.flush()

            for day, windows in weekly.items():
                if not windows:
                    continue
                entry = WeeklyAvailability(day=Weekday(day))
                for start, end in windows:
                    entry.slots.append(AvailabilitySlot(start=start, end=end))
                provider.weekly_availability.append(entry)

        if is_available is not None:
            provider.is_available = is_available

        self.session.commit()
        self.session.refresh(provider)
        logger.info("Availability replaced", extra={"provider_id": str(provider_id)})
        return provider

    def add_slot(
        self,
        provider_id: UUID,
        user: User,
        day: Weekday,
        start: str,
        end: str,
    ) -> AvailabilitySlot:
        """Append a slot to `day`, creating the day entry on first use."""
        provider = self.providers.get_owned(provider_id, user)
        _check_time("start", start)
        _check_time("end", end)

        day = Weekday(day)
        entry = next((e for e in provider.weekly_availability if e.day == day), None)
        if entry is None:
            entry = WeeklyAvailability(day=day)
            provider.weekly_availability.append(entry)

        slot = AvailabilitySlot(start=start, end=end)
        entry.slots.append(slot)
        self.session.commit()
        return slot

    def delete_slot(self, provider_id: UUID, user: User, day: Weekday, slot_id: UUID) -> None:
        """Remove one slot; the day entry goes with its last slot."""
        provider = self.providers.get_owned(provider_id, user)

        day = Weekday(day)
        entry = next((e for e in provider.weekly_availability if e.day == day), None)
        if entry is None:
            raise NotFoundException("Availability for day", day.value)

        slot = next((s for s in entry.slots if s.id == slot_id), None)
        if slot is None:
            raise NotFoundException("Slot", str(slot_id))

        entry.slots.remove(slot)
        if not entry.slots:
            provider.weekly_availability.remove(entry)
        self.session.commit()

    # Holidays

    def add_holiday(self, provider_id: UUID, user: User, date: str, reason: str) -> Holiday:
        """
        Close a whole date.

        Raises:
            ConflictException: A holiday already exists on that date
        """
        provider = self.providers.get_owned(provider_id, user)
        _check_date(date)
        if not reason or not reason.strip():
            raise ValidationException(
                "Holiday reason is required",
                errors={"reason": "Reason is required"},
            )

        existing = self.session.execute(
            select(Holiday).where(Holiday.provider_id == provider.id, Holiday.date == date)
        ).scalar_one_or_none()
        if existing is not None:
            raise ConflictException("Holiday already exists for this date")

        holiday = Holiday(date=date, reason=reason.strip())
        provider.holidays.append(holiday)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictException("Holiday already exists for this date")
        return holiday

    def delete_holiday(self, provider_id: UUID, user: User, holiday_id: UUID) -> None:
        provider = self.providers.get_owned(provider_id, user)
        holiday = next((h for h in provider.holidays if h.id == holiday_id), None)
        if holiday is None:
            raise NotFoundException("Holiday", str(holiday_id))
        provider.holidays.remove(holiday)
        self.session.commit()

    # Breaks

    def add_break(
        self,
        provider_id: UUID,
        user: User,
        date: str,
        start: str,
        end: str,
        reason: Optional[str] = None,
    ) -> Break:
        """Add a time-boxed break. Identical breaks are allowed."""
        provider = self.providers.get_owned(provider_id, user)
        _check_date(date)
        _check_time("start", start)
        _check_time("end", end)

        brk = Break(date=date, start=start, end=end, reason=reason)
        provider.breaks.append(brk)
        self.session.commit()
        return brk

    def delete_break(self, provider_id: UUID, user: User, break_id: UUID) -> None:
        provider = self.providers.get_owned(provider_id, user)
        brk = next((b for b in provider.breaks if b.id == break_id), None)
        if brk is None:
            raise NotFoundException("Break", str(break_id))
        provider.breaks.remove(brk)
        self.session.commit()
