"""
Review service and rating aggregation.

Service and provider ratings are always recomputed from the full set of
existing reviews (mean rounded to one decimal, plus count), never
adjusted incrementally.
"""
import math
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from nearserve.lib.logging import get_logger
from nearserve.lib.pagination import PageRequest
from nearserve.models.bookings import Booking, BookingStatus
from nearserve.models.notifications import (
    NotificationPriority,
    NotificationType,
    RelatedKind,
    RelatedRef,
)
from nearserve.models.providers import Provider
from nearserve.models.reviews import Review
from nearserve.models.services import Service
from nearserve.models.users import User
from nearserve.services.notification_service import NotificationDispatcher


logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def round_rating(value: Optional[float]) -> float:
    """Half-up rounding to one decimal (4.25 -> 4.3)."""
    if value is None:
        return 0.0
    return math.floor(float(value) * 10 + 0.5) / 10


def recompute_service_rating(session: Session, service_id: UUID) -> Tuple[float, int]:
    average, count = session.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.service_id == service_id)
    ).one()
    average = round_rating(average) if count else 0.0
    session.execute(
        update(Service)
        .where(Service.id == service_id)
        .values(rating_average=average, rating_count=count)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return average, count


def recompute_provider_rating(session: Session, provider_id: UUID) -> Tuple[float, int]:
    average, count = session.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.provider_id == provider_id)
    ).one()
    average = round_rating(average) if count else 0.0
    session.execute(
        update(Provider)
        .where(Provider.id == provider_id)
        .values(rating_average=average, rating_count=count)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return average, count


class ReviewService:
    """Create, list and delete reviews; keeps the two rating aggregates in step."""

    def __init__(self, session: Session, dispatcher: Optional[NotificationDispatcher] = None):
        self.session = session
        self.dispatcher = dispatcher

    def _refresh_aggregates(self, service_id: UUID, provider_id: UUID) -> None:
        # The review write is already committed; a failed recompute is
        # repaired by the next create or delete.
        try:
            recompute_service_rating(self.session, service_id)
            recompute_provider_rating(self.session, provider_id)
        except Exception as e:
            self.session.rollback()
            logger.error(
                f"Rating recompute failed: {e}",
                extra={"service_id": str(service_id), "provider_id": str(provider_id)},
                exc_info=True,
            )

    def create(
        self,
        user: User,
        booking_id: UUID,
        service_id: UUID,
        rating: int,
        comment: str,
        images: Optional[List[str]] = None,
    ) -> Review:
        """
        Review a completed booking the caller made.

        Raises:
            BadRequestException: Rating out of range, booking not completed, or service mismatch
            NotFoundException: Booking or service does not exist
            ForbiddenException: Caller did not make the booking
            ConflictException: The booking already has a review
        """
        if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise BadRequestException("Rating must be between 1 and 5")
        if not comment or not comment.strip():
            raise BadRequestException("Booking ID, service ID, rating, and comment are required")

        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        if booking.user_id != user.id:
            raise ForbiddenException("Not authorized to review this booking")
        if booking.status != BookingStatus.COMPLETED:
            raise BadRequestException("Can only review completed bookings")
        if booking.service_id != service_id:
            raise BadRequestException("Service ID does not match the booking")

        existing = self.session.execute(
            select(Review.id).where(Review.booking_id == booking_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ConflictException("Review already exists for this booking")

        service = self.session.get(Service, service_id)
        if service is None:
            raise NotFoundException("Service", str(service_id))

        review = Review(
            booking_id=booking.id,
            service_id=service.id,
            provider_id=service.provider_id,
            user_id=user.id,
            rating=rating,
            comment=comment.strip(),
            images=images or [],
            is_verified=True,
        )
        self.session.add(review)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictException("Review already exists for this booking")
        self.session.refresh(review)

        logger.info(
            "Review created",
            extra={"review_id": str(review.id), "service_id": str(service.id), "rating": rating},
        )

        self._refresh_aggregates(service.id, service.provider_id)

        if self.dispatcher is not None:
            self.dispatcher.dispatch(
                user_id=service.provider.user_id,
                type=NotificationType.REVIEW_RECEIVED,
                title="New Review Received",
                message=f"You received a {rating}-star review from {user.name}",
                related=RelatedRef(RelatedKind.REVIEW, review.id),
                priority=NotificationPriority.MEDIUM,
            )
        return review

    def delete(self, review_id: UUID, user: User) -> None:
        review = self.session.get(Review, review_id)
        if review is None:
            raise NotFoundException("Review", str(review_id))
        if review.user_id != user.id:
            raise ForbiddenException("Not authorized to delete this review")

        service_id, provider_id = review.service_id, review.provider_id
        self.session.delete(review)
        self.session.commit()

        logger.info("Review deleted", extra={"review_id": str(review_id)})
        self._refresh_aggregates(service_id, provider_id)

    def rating_distribution(self, service_id: UUID) -> Dict[int, int]:
        """{5: n, 4: n, 3: n, 2: n, 1: n} for one service."""
        distribution = {star: 0 for star in range(MAX_RATING, MIN_RATING - 1, -1)}
        rows = self.session.execute(
            select(Review.rating, func.count())
            .where(Review.service_id == service_id)
            .group_by(Review.rating)
        ).all()
        for rating, count in rows:
            distribution[rating] = count
        return distribution

    def list_for_service(self, service_id: UUID, page: PageRequest) -> dict:
        """Newest-first page of a service's reviews with its rating breakdown."""
        service = self.session.get(Service, service_id)
        if service is None:
            raise NotFoundException("Service", str(service_id))
        # Aggregates may have been rewritten by a bulk UPDATE
        self.session.refresh(service)

        total = self.session.scalar(
            select(func.count()).select_from(Review).where(Review.service_id == service_id)
        )
        reviews = self.session.scalars(
            select(Review)
            .where(Review.service_id == service_id)
            .order_by(Review.created_at.desc(), Review.id)
            .offset(page.offset)
            .limit(page.limit)
        ).unique().all()

        return {
            "reviews": list(reviews),
            "pagination": page.meta(total),
            "rating_distribution": self.rating_distribution(service_id),
            "average_rating": service.rating_average,
        }

    def list_for_user(self, user: User, page: PageRequest) -> Tuple[List[Review], dict]:
        total = self.session.scalar(
            select(func.count()).select_from(Review).where(Review.user_id == user.id)
        )
        reviews = self.session.scalars(
            select(Review)
            .where(Review.user_id == user.id)
            .order_by(Review.created_at.desc(), Review.id)
            .offset(page.offset)
            .limit(page.limit)
        ).unique().all()
        return list(reviews), page.meta(total)
