"""
Tests for rating aggregation.
"""
import pytest
from sqlalchemy import select

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
)
from nearserve.models.bookings import BookingStatus
from nearserve.models.providers import Provider
from nearserve.models.reviews import Review
from nearserve.models.services import Service
from nearserve.services.review_service import (
    ReviewService,
    recompute_provider_rating,
    recompute_service_rating,
    round_rating,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "value,expected",
    [(4.25, 4.3), (4.24, 4.2), (3.0, 3.0), (4.666, 4.7), (None, 0.0)],
)
def test_round_rating_half_up(value, expected):
    assert round_rating(value) == expected


@pytest.mark.unit
def test_recompute_without_reviews(db_session, service):
    assert recompute_service_rating(db_session, service.id) == (0.0, 0)
    assert recompute_provider_rating(db_session, service.provider_id) == (0.0, 0)


@pytest.mark.unit
def test_aggregates_follow_create_and_delete(db_session, customer, service, make_booking):
    reviews = ReviewService(db_session)
    first = make_booking(customer, service, status=BookingStatus.COMPLETED)
    second = make_booking(customer, service, status=BookingStatus.COMPLETED)

    review = reviews.create(customer, first.id, service.id, 5, "Great work")
    reviews.create(customer, second.id, service.id, 4, "Good")

    db_session.expire_all()
    refreshed = db_session.get(Service, service.id)
    assert (refreshed.rating_average, refreshed.rating_count) == (4.5, 2)
    provider = db_session.get(Provider, service.provider_id)
    assert (provider.rating_average, provider.rating_count) == (4.5, 2)

    reviews.delete(review.id, customer)

    db_session.expire_all()
    refreshed = db_session.get(Service, service.id)
    assert (refreshed.rating_average, refreshed.rating_count) == (4.0, 1)


@pytest.mark.unit
def test_rating_distribution(db_session, customer, service, make_booking):
    reviews = ReviewService(db_session)
    for rating in (5, 5, 3):
        booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
        reviews.create(customer, booking.id, service.id, rating, "ok")

    assert reviews.rating_distribution(service.id) == {5: 2, 4: 0, 3: 1, 2: 0, 1: 0}


@pytest.mark.unit
def test_review_requires_completed_booking(db_session, customer, service, make_booking):
    booking = make_booking(customer, service, status=BookingStatus.IN_PROGRESS)

    with pytest.raises(BadRequestException) as exc_info:
        ReviewService(db_session).create(customer, booking.id, service.id, 5, "Too early")

    assert exc_info.value.message == "Can only review completed bookings"


@pytest.mark.unit
def test_one_review_per_booking(db_session, customer, service, make_booking):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    reviews = ReviewService(db_session)
    reviews.create(customer, booking.id, service.id, 5, "Great")

    with pytest.raises(ConflictException):
        reviews.create(customer, booking.id, service.id, 1, "Changed my mind")


@pytest.mark.unit
def test_concurrent_review_loses_on_constraint(db_session, customer, service, make_booking, commit_after_lookup):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    commit_after_lookup(Review.__table__, Review(
        booking_id=booking.id,
        service_id=service.id,
        provider_id=service.provider_id,
        user_id=customer.id,
        rating=4,
        comment="First tab",
    ))

    with pytest.raises(ConflictException) as exc_info:
        ReviewService(db_session).create(customer, booking.id, service.id, 2, "Second tab")

    assert exc_info.value.message == "Review already exists for this booking"
    stored = db_session.execute(select(Review).where(Review.booking_id == booking.id)).scalars().all()
    assert [r.comment for r in stored] == ["First tab"]


@pytest.mark.unit
def test_only_booking_customer_may_review(db_session, customer, service, make_booking, make_user):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    stranger = make_user(name="Stranger")

    with pytest.raises(ForbiddenException):
        ReviewService(db_session).create(stranger, booking.id, service.id, 5, "Hi")


@pytest.mark.unit
def test_rating_out_of_range(db_session, customer, service, make_booking):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)

    with pytest.raises(BadRequestException) as exc_info:
        ReviewService(db_session).create(customer, booking.id, service.id, 6, "Off the scale")

    assert exc_info.value.message == "Rating must be between 1 and 5"
