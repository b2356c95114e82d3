"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from nearserve.models.users import User
from nearserve.models.providers import Provider
from nearserve.models.availability import WeeklyAvailability, AvailabilitySlot, Holiday, Break
from nearserve.models.services import Service
from nearserve.models.bookings import Booking
from nearserve.models.reviews import Review
from nearserve.models.notifications import Notification

__all__ = [
    "User",
    "Provider",
    "WeeklyAvailability",
    "AvailabilitySlot",
    "Holiday",
    "Break",
    "Service",
    "Booking",
    "Review",
    "Notification",
]
