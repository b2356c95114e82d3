"""
Tests for catalog browse, search and ownership rules.
"""
import pytest
from sqlalchemy import select

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    ValidationException,
)
from nearserve.lib.pagination import PageRequest
from nearserve.models.bookings import BookingStatus
from nearserve.models.providers import Provider
from nearserve.models.reviews import Review
from nearserve.models.services import PriceType, ServiceCategory
from nearserve.services.catalog_service import CatalogService, ServiceFilters, bounding_box
from nearserve.services.review_service import ReviewService

PUNE = {"city": "Pune", "coordinates": {"latitude": 18.52, "longitude": 73.85}}
MUMBAI = {"city": "Mumbai", "coordinates": {"latitude": 19.07, "longitude": 72.87}}


@pytest.fixture
def catalog(db_session):
    return CatalogService(db_session)


@pytest.mark.unit
def test_bounding_box():
    min_lat, max_lat, min_lng, max_lng = bounding_box(0.0, 0.0, 111.0)

    assert (min_lat, max_lat) == pytest.approx((-1.0, 1.0))
    assert (min_lng, max_lng) == pytest.approx((-1.0, 1.0))


@pytest.mark.unit
def test_browse_filters(catalog, provider, make_service):
    make_service(provider, title="Leak repair", price=500, city="Pune")
    make_service(provider, title="Wiring", price=900, city="Pune", category=ServiceCategory.ELECTRICIAN)
    make_service(provider, title="Pipe fitting", price=300, city="Mumbai")
    make_service(provider, title="Hidden", price=100, city="Pune", is_active=False)

    services, meta = catalog.browse(
        ServiceFilters(category=ServiceCategory.PLUMBER, city="pune", max_price=600),
        PageRequest(1, 10),
    )

    assert [s.title for s in services] == ["Leak repair"]
    assert meta["total"] == 1


@pytest.mark.unit
def test_browse_text_search_is_case_insensitive(catalog, provider, make_service):
    make_service(provider, title="Bathroom LEAK fix")
    make_service(provider, title="Ceiling fan", description="Install a fan")

    services, _ = catalog.browse(ServiceFilters(search="leak"), PageRequest())

    assert [s.title for s in services] == ["Bathroom LEAK fix"]


@pytest.mark.unit
def test_browse_sort_by_price(catalog, provider, make_service):
    for price in (700, 200, 450):
        make_service(provider, title=f"Job {price}", price=price)

    services, _ = catalog.browse(ServiceFilters(), PageRequest(), sort_by="price", sort_order="asc")

    assert [s.price for s in services] == [200, 450, 700]


@pytest.mark.unit
def test_browse_unknown_sort_field(catalog):
    with pytest.raises(BadRequestException):
        catalog.browse(ServiceFilters(), PageRequest(), sort_by="colour")


@pytest.mark.unit
def test_search_requires_a_criterion(catalog):
    with pytest.raises(BadRequestException) as exc_info:
        catalog.search(lat=18.5)

    assert exc_info.value.message == "Please provide search query, category, city, or coordinates"


@pytest.mark.unit
def test_search_by_coordinates(catalog, provider, make_service):
    make_service(provider, title="Near", location=PUNE)
    make_service(provider, title="Far", location=MUMBAI)

    services = catalog.search(lat=18.5, lng=73.8, radius_km=20)

    assert [s.title for s in services] == ["Near"]


@pytest.mark.unit
def test_search_skips_unavailable(catalog, provider, make_service):
    make_service(provider, title="Leak repair")
    make_service(provider, title="Leak check", is_available=False)

    assert [s.title for s in catalog.search(q="leak")] == ["Leak repair"]


@pytest.mark.unit
def test_create_requires_provider_profile(catalog, customer):
    with pytest.raises(ForbiddenException) as exc_info:
        catalog.create(customer, {"title": "x"})

    assert "create a provider profile first" in exc_info.value.message


@pytest.mark.unit
def test_create_reports_missing_fields(catalog, provider_user):
    with pytest.raises(ValidationException) as exc_info:
        catalog.create(provider_user, {"title": "Wiring", "location": {}})

    errors = exc_info.value.details["errors"]
    assert set(errors) == {"description", "category", "price", "location.city"}


@pytest.mark.unit
def test_create_defaults(catalog, provider_user):
    service = catalog.create(provider_user, {
        "title": "Wiring",
        "description": "Full house wiring",
        "category": "electrician",
        "price": 1200,
        "location": {"city": "Pune"},
    })

    assert service.price_type == PriceType.HOURLY
    assert service.service_area == 10
    assert service.city == "Pune"


@pytest.mark.unit
def test_update_by_other_provider(catalog, service, make_provider):
    other = make_provider(business_name="Rival")

    with pytest.raises(ForbiddenException) as exc_info:
        catalog.update(service.id, other.user, {"price": 1})

    assert exc_info.value.message == "You can only manage your own services"


@pytest.mark.unit
def test_update_moves_city(catalog, service, provider_user):
    updated = catalog.update(service.id, provider_user, {"location": {"city": "Nashik"}, "title": None})

    assert updated.city == "Nashik"
    assert updated.title == "Leak repair"


@pytest.mark.unit
def test_delete_recomputes_provider_rating(
    foreign_keys, db_session, catalog, customer, provider, provider_user, make_service, make_booking,
):
    reviews = ReviewService(db_session)
    kept = make_service(provider, title="Leak repair")
    dropped = make_service(provider, title="Tap install")
    for service, rating in ((kept, 1), (dropped, 5)):
        booking = make_booking(customer, service, status=BookingStatus.COMPLETED)
        reviews.create(customer, booking.id, service.id, rating, "Done")

    catalog.delete(dropped.id, provider_user)

    db_session.expire_all()
    remaining = db_session.execute(select(Review)).scalars().all()
    refreshed = db_session.get(Provider, provider.id)
    assert [r.service_id for r in remaining] == [kept.id]
    assert (refreshed.rating_average, refreshed.rating_count) == (1.0, 1)
