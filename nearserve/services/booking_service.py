"""
Booking lifecycle service.

Status moves along BOOKING_TRANSITIONS when driven by the provider:

    pending -> confirmed | rejected
    confirmed -> in-progress | cancelled
    in-progress -> completed

The customer may cancel any booking that is not already completed or
cancelled. Each change notifies the other party through the dispatcher
after the change is committed.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
)
from nearserve.lib.logging import get_logger
from nearserve.lib.pagination import PageRequest
from nearserve.models.bookings import Booking, BookingStatus, can_transition
from nearserve.models.notifications import (
    NotificationPriority,
    NotificationType,
    RelatedKind,
    RelatedRef,
)
from nearserve.models.services import Service
from nearserve.models.users import User
from nearserve.services.notification_service import NotificationDispatcher
from nearserve.services.provider_service import ProviderService, increment_counter


logger = get_logger(__name__)

PLACEHOLDER = "To be confirmed"
DEFAULT_TIME = "10:00 AM"
DEFAULT_NOTES = "Quick booking"
DEFAULT_CANCEL_REASON = "Cancelled by user"

SORTABLE_FIELDS = {
    "created_at": Booking.created_at,
    "scheduled_date": Booking.scheduled_date,
    "price": Booking.price,
    "status": Booking.status,
}

STATUS_MESSAGES = {
    BookingStatus.CONFIRMED: "Your booking has been confirmed",
    BookingStatus.IN_PROGRESS: "Your service is now in progress",
    BookingStatus.COMPLETED: "Your booking has been completed",
    BookingStatus.CANCELLED: "Your booking has been cancelled",
    BookingStatus.REJECTED: "Your booking request has been rejected",
}

HIGH_PRIORITY_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})

STAT_KEYS = {
    BookingStatus.PENDING: "pending",
    BookingStatus.CONFIRMED: "confirmed",
    BookingStatus.IN_PROGRESS: "in_progress",
    BookingStatus.COMPLETED: "completed",
    BookingStatus.CANCELLED: "cancelled",
}


def default_schedule(now: Optional[datetime] = None) -> datetime:
    """Tomorrow at 10:00 local time."""
    now = now or datetime.now().astimezone()
    return (now + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)


def notification_type_for(status: BookingStatus) -> NotificationType:
    # "in-progress" -> booking_in_progress
    return NotificationType(f"booking_{status.value.replace('-', '_')}")


def _order_by(sort_by: str, sort_order: str):
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise BadRequestException(
            f"Cannot sort by '{sort_by}'",
            details={"allowed": sorted(SORTABLE_FIELDS)},
        )
    return column.asc() if sort_order == "asc" else column.desc()


class BookingService:
    """Create, list, move and cancel bookings."""

    def __init__(self, session: Session, dispatcher: NotificationDispatcher):
        self.session = session
        self.dispatcher = dispatcher
        self.providers = ProviderService(session)

    def _get(self, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        return booking

    def create(
        self,
        user: User,
        service_id: UUID,
        scheduled_date: Optional[datetime] = None,
        scheduled_time: Optional[str] = None,
        address: Optional[dict] = None,
        contact: Optional[dict] = None,
        customer_notes: Optional[str] = None,
    ) -> Booking:
        """
        Book a service. Anything not supplied is filled with a placeholder
        the customer and provider settle later.

        Raises:
            NotFoundException: Service does not exist
            BadRequestException: Service is inactive or unavailable
        """
        service = self.session.get(Service, service_id)
        if service is None:
            raise NotFoundException("Service", str(service_id))
        if not service.is_active or not service.is_available:
            raise BadRequestException("Service is not available for booking")

        location = service.location or {}
        booking = Booking(
            service_id=service.id,
            user_id=user.id,
            provider_id=service.provider_id,
            scheduled_date=scheduled_date or default_schedule(),
            scheduled_time=scheduled_time or DEFAULT_TIME,
            price=service.price,
            customer_notes=customer_notes or DEFAULT_NOTES,
            address=address or {
                "street": PLACEHOLDER,
                "city": location.get("city") or "Not specified",
                "state": location.get("state") or "",
                "zip_code": location.get("zip_code") or "",
            },
            contact=contact or {
                "phone": user.phone or PLACEHOLDER,
                "alternate_phone": "",
            },
            status=BookingStatus.PENDING,
        )
        self.session.add(booking)
        self.session.commit()

        increment_counter(self.session, service.provider_id, "total_bookings")
        self.session.commit()
        self.session.refresh(booking)

        logger.info(
            "Booking created",
            extra={"booking_id": str(booking.id), "service_id": str(service.id)},
        )

        self.dispatcher.dispatch(
            user_id=service.provider.user_id,
            type=NotificationType.BOOKING_CREATED,
            title="New Booking Request",
            message=f"You have a new booking request for {service.title}",
            related=RelatedRef(RelatedKind.BOOKING, booking.id),
            priority=NotificationPriority.HIGH,
        )
        return booking

    def list_for_customer(
        self,
        user: User,
        page: PageRequest,
        status: Optional[BookingStatus] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[Booking], dict]:
        conditions = [Booking.user_id == user.id]
        if status is not None:
            conditions.append(Booking.status == status)

        total = self.session.scalar(
            select(func.count()).select_from(Booking).where(*conditions)
        )
        bookings = self.session.scalars(
            select(Booking)
            .where(*conditions)
            .order_by(_order_by(sort_by, sort_order), Booking.id)
            .offset(page.offset)
            .limit(page.limit)
        ).unique().all()
        return list(bookings), page.meta(total)

    def list_for_provider(
        self,
        user: User,
        page: PageRequest,
        status: Optional[BookingStatus] = None,
        sort_by: str = "scheduled_date",
        sort_order: str = "asc",
    ) -> Tuple[List[Booking], dict, Dict[str, int]]:
        """Bookings for the caller's provider profile plus per-status counts."""
        provider = self.providers.find_by_user(user.id)
        if provider is None:
            raise ForbiddenException("Only providers can access this endpoint")

        conditions = [Booking.provider_id == provider.id]
        if status is not None:
            conditions.append(Booking.status == status)

        total = self.session.scalar(
            select(func.count()).select_from(Booking).where(*conditions)
        )
        bookings = self.session.scalars(
            select(Booking)
            .where(*conditions)
            .order_by(_order_by(sort_by, sort_order), Booking.id)
            .offset(page.offset)
            .limit(page.limit)
        ).unique().all()

        stats = {key: 0 for key in STAT_KEYS.values()}
        rows = self.session.execute(
            select(Booking.status, func.count())
            .where(Booking.provider_id == provider.id)
            .group_by(Booking.status)
        ).all()
        for booking_status, count in rows:
            if booking_status in STAT_KEYS:
                stats[STAT_KEYS[booking_status]] = count

        return list(bookings), page.meta(total), stats

    def get(self, booking_id: UUID, user: User) -> Booking:
        """Visible to the booking's customer and to the provider it was made with."""
        booking = self._get(booking_id)
        if booking.user_id == user.id:
            return booking
        provider = self.providers.find_by_user(user.id)
        if provider is not None and booking.provider_id == provider.id:
            return booking
        raise ForbiddenException("You are not authorized to view this booking")

    def update_status(
        self,
        booking_id: UUID,
        user: User,
        status: BookingStatus,
        provider_notes: Optional[str] = None,
    ) -> Booking:
        """
        Provider moves a booking along the transition table.

        Raises:
            BadRequestException: Unknown status, terminal booking, or illegal transition
            NotFoundException: Booking does not exist
            ForbiddenException: Caller is not the booking's provider
        """
        try:
            status = BookingStatus(status)
        except ValueError:
            raise BadRequestException(
                f"Status must be one of: {', '.join(s.value for s in BookingStatus)}"
            )

        booking = self._get(booking_id)
        provider = self.providers.find_by_user(user.id)
        if provider is None:
            raise ForbiddenException("Only providers can update booking status")
        if booking.provider_id != provider.id:
            raise ForbiddenException("You can only update bookings for your own services")

        current = booking.status
        if current in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
            raise BadRequestException(f"Cannot update booking that is already {current.value}")
        if not can_transition(current, status):
            raise BadRequestException(
                f"Cannot change booking status from {current.value} to {status.value}"
            )

        now = datetime.now(timezone.utc)
        booking.status = status
        if provider_notes is not None:
            booking.provider_notes = provider_notes
        if status == BookingStatus.COMPLETED:
            booking.completed_at = now
        elif status in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
            booking.cancelled_at = now
        self.session.commit()

        if status == BookingStatus.COMPLETED:
            increment_counter(self.session, provider.id, "completed_bookings")
            self.session.commit()
        elif status == BookingStatus.CANCELLED:
            increment_counter(self.session, provider.id, "cancelled_bookings")
            self.session.commit()

        logger.info(
            "Booking status updated",
            extra={
                "booking_id": str(booking.id),
                "from_status": current.value,
                "to_status": status.value,
            },
        )

        self.dispatcher.dispatch(
            user_id=booking.user_id,
            type=notification_type_for(status),
            title="Booking Update",
            message=STATUS_MESSAGES[status],
            related=RelatedRef(RelatedKind.BOOKING, booking.id),
            priority=(
                NotificationPriority.HIGH
                if status in HIGH_PRIORITY_STATUSES
                else NotificationPriority.MEDIUM
            ),
        )
        return booking

    def cancel(self, booking_id: UUID, user: User, reason: Optional[str] = None) -> Booking:
        """
        Customer cancellation from any non-terminal state (rejected included).

        Raises:
            NotFoundException: Booking does not exist
            ForbiddenException: Caller is not the booking's customer
            BadRequestException: Booking already completed or cancelled
        """
        booking = self._get(booking_id)
        if booking.user_id != user.id:
            raise ForbiddenException("You can only cancel your own bookings")
        if booking.status == BookingStatus.COMPLETED:
            raise BadRequestException("Cannot cancel a completed booking")
        if booking.status == BookingStatus.CANCELLED:
            raise BadRequestException("Booking is already cancelled")

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = datetime.now(timezone.utc)
        booking.cancellation_reason = reason or DEFAULT_CANCEL_REASON
        self.session.commit()

        logger.info("Booking cancelled by customer", extra={"booking_id": str(booking.id)})

        self.dispatcher.dispatch(
            user_id=booking.provider.user_id,
            type=NotificationType.BOOKING_CANCELLED,
            title="Booking Cancelled",
            message="A customer has cancelled their booking",
            related=RelatedRef(RelatedKind.BOOKING, booking.id),
            priority=NotificationPriority.MEDIUM,
        )
        return booking
