"""Integration tests for review routes and the per-service review listing."""
import pytest
from sqlalchemy import select

from nearserve.models.bookings import BookingStatus
from nearserve.models.reviews import Review
from nearserve.models.services import Service
from nearserve.services import review_service


def post_review(client, headers, booking, rating=5, comment="Fixed the leak in an hour"):
    return client.post(
        "/reviews",
        json={
            "booking_id": str(booking.id),
            "service_id": str(booking.service_id),
            "rating": rating,
            "comment": comment,
        },
        headers=headers,
    )


@pytest.mark.integration
def test_review_completed_booking(client, customer, provider_user, service, make_booking, auth_headers, dispatcher):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)

    response = post_review(client, auth_headers(customer), booking, rating=4)

    assert response.status_code == 201
    data = response.json()
    assert data["rating"] == 4
    assert data["is_verified"] is True
    assert data["author"]["name"] == "Asha Customer"

    outcome = dispatcher.outcomes[-1]
    assert outcome.type == "review_received"
    assert outcome.user_id == provider_user.id


@pytest.mark.integration
def test_review_in_progress_booking(client, customer, service, make_booking, auth_headers):
    booking = make_booking(customer, service, status=BookingStatus.IN_PROGRESS)

    response = post_review(client, auth_headers(customer), booking)

    assert response.status_code == 400
    assert response.json()["error"] == "Can only review completed bookings"


@pytest.mark.integration
def test_duplicate_review(client, customer, service, make_booking, auth_headers):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    post_review(client, auth_headers(customer), booking)

    response = post_review(client, auth_headers(customer), booking, rating=1)

    assert response.status_code == 409
    assert response.json()["error"] == "Review already exists for this booking"


@pytest.mark.integration
def test_review_out_of_range(client, customer, service, make_booking, auth_headers):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)

    response = post_review(client, auth_headers(customer), booking, rating=0)

    assert response.status_code == 400


@pytest.mark.integration
def test_review_someone_elses_booking(client, customer, service, make_booking, make_user, auth_headers):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    stranger = make_user(name="Stranger")

    response = post_review(client, auth_headers(stranger), booking)

    assert response.status_code == 403
    assert response.json()["error"] == "Not authorized to review this booking"


@pytest.mark.integration
def test_service_reviews_with_distribution(client, customer, service, make_booking, auth_headers):
    for rating in (5, 4, 4):
        booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
        post_review(client, auth_headers(customer), booking, rating=rating)

    response = client.get(f"/services/{service.id}/reviews")

    assert response.status_code == 200
    data = response.json()
    assert data["pagination"]["total"] == 3
    assert data["average_rating"] == 4.3
    assert data["rating_distribution"] == {"5": 1, "4": 2, "3": 0, "2": 0, "1": 0}

    listing = client.get(f"/services/{service.id}").json()
    assert listing["rating_average"] == 4.3
    assert listing["rating_count"] == 3
    assert listing["provider"]["rating_average"] == 4.3


@pytest.mark.integration
def test_my_reviews_and_delete(client, customer, service, make_booking, auth_headers):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    review_id = post_review(client, auth_headers(customer), booking).json()["id"]

    mine = client.get("/reviews/my-reviews", headers=auth_headers(customer)).json()
    assert [r["id"] for r in mine["data"]] == [review_id]

    response = client.delete(f"/reviews/{review_id}", headers=auth_headers(customer))
    assert response.status_code == 200
    assert response.json()["message"] == "Review deleted successfully"

    listing = client.get(f"/services/{service.id}").json()
    assert (listing["rating_average"], listing["rating_count"]) == (0.0, 0)


@pytest.mark.integration
def test_delete_review_by_other_user(client, customer, service, make_booking, make_user, auth_headers):
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
    review_id = post_review(client, auth_headers(customer), booking).json()["id"]
    stranger = make_user(name="Stranger")

    response = client.delete(f"/reviews/{review_id}", headers=auth_headers(stranger))

    assert response.status_code == 403
    assert response.json()["error"] == "Not authorized to delete this review"


@pytest.mark.integration
def test_review_survives_side_effect_failures(
    client, customer, service, make_booking, auth_headers, failing_dispatcher, db_session, monkeypatch,
):
    def broken_recompute(session, service_id):
        raise RuntimeError("aggregate query failed")

    monkeypatch.setattr(review_service, "recompute_service_rating", broken_recompute)
    booking = make_booking(customer, service, status=BookingStatus.COMPLETED)

    response = post_review(client, auth_headers(customer), booking, rating=5)

    assert response.status_code == 201
    db_session.expire_all()
    stored = db_session.execute(select(Review).where(Review.booking_id == booking.id)).scalars().all()
    assert [r.rating for r in stored] == [5]
    assert db_session.get(Service, service.id).rating_count == 0
    assert failing_dispatcher.outcomes[-1].delivered is False
