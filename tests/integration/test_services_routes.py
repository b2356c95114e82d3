"""Integration tests for service catalog routes."""
import pytest

from nearserve.models.services import ServiceCategory

NEW_SERVICE = {
    "title": "Full house wiring",
    "description": "Rewiring for apartments up to 3BHK",
    "category": "electrician",
    "price": 2500,
    "price_type": "fixed",
    "location": {"city": "Pune", "coordinates": {"latitude": 18.52, "longitude": 73.85}},
}


@pytest.mark.integration
def test_browse_is_public(client, service):
    response = client.get("/services")

    assert response.status_code == 200
    data = response.json()
    assert data["pagination"] == {"total": 1, "page": 1, "pages": 1, "limit": 10}
    assert data["data"][0]["provider"]["business_name"] == "Fix-It Works"


@pytest.mark.integration
def test_browse_filters(client, provider, make_service):
    make_service(provider, title="Leak repair", price=500)
    make_service(provider, title="Fan install", price=800, category=ServiceCategory.ELECTRICIAN)
    make_service(provider, title="Mumbai leak", price=400, city="Mumbai")

    response = client.get(
        "/services",
        params={"category": "plumber", "city": "PUNE", "min_price": 100, "sort_by": "price", "sort_order": "asc"},
    )

    assert [s["title"] for s in response.json()["data"]] == ["Leak repair"]


@pytest.mark.integration
def test_browse_bad_sort(client):
    response = client.get("/services", params={"sort_by": "colour"})

    assert response.status_code == 400


@pytest.mark.integration
def test_browse_unknown_category(client):
    response = client.get("/services", params={"category": "astrologer"})

    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"


@pytest.mark.integration
def test_search_needs_criteria(client):
    response = client.get("/services/search")

    assert response.status_code == 400
    assert response.json()["error"] == "Please provide search query, category, city, or coordinates"


@pytest.mark.integration
def test_search_by_text(client, provider, make_service):
    make_service(provider, title="Leak repair")
    make_service(provider, title="Painting", category=ServiceCategory.PAINTER)

    response = client.get("/services/search", params={"q": "LEAK"})

    assert response.status_code == 200
    assert response.json()["count"] == 1
    assert response.json()["data"][0]["title"] == "Leak repair"


@pytest.mark.integration
def test_get_unknown_service(client):
    response = client.get("/services/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 404


@pytest.mark.integration
def test_create_requires_provider_profile(client, customer, auth_headers):
    response = client.post("/services", json=NEW_SERVICE, headers=auth_headers(customer))

    assert response.status_code == 403
    assert response.json()["error"] == (
        "Only providers can manage services. Please create a provider profile first."
    )


@pytest.mark.integration
def test_create_service(client, provider_user, auth_headers):
    response = client.post("/services", json=NEW_SERVICE, headers=auth_headers(provider_user))

    assert response.status_code == 201
    data = response.json()
    assert data["city"] == "Pune"
    assert data["price_type"] == "fixed"
    assert data["service_area"] == 10
    assert data["rating_count"] == 0


@pytest.mark.integration
def test_create_service_missing_fields(client, provider_user, auth_headers):
    response = client.post("/services", json={"title": "Half a listing"}, headers=auth_headers(provider_user))

    assert response.status_code == 400
    assert "location.city" in response.json()["details"]["errors"]


@pytest.mark.integration
def test_create_service_suspended_provider(client, make_provider, auth_headers):
    suspended = make_provider(is_suspended=True)

    response = client.post("/services", json=NEW_SERVICE, headers=auth_headers(suspended.user))

    assert response.status_code == 403
    assert response.json()["error"] == "Your provider account is not active or is suspended."


@pytest.mark.integration
def test_update_and_delete_service(client, service, provider_user, auth_headers):
    headers = auth_headers(provider_user)

    updated = client.put(f"/services/{service.id}", json={"price": 650, "is_available": False}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["price"] == 650
    assert updated.json()["is_available"] is False

    deleted = client.delete(f"/services/{service.id}", headers=headers)
    assert deleted.json()["message"] == "Service deleted successfully"
    assert client.get(f"/services/{service.id}").status_code == 404


@pytest.mark.integration
def test_update_by_other_provider(client, service, make_provider, auth_headers):
    rival = make_provider(business_name="Rival")

    response = client.put(f"/services/{service.id}", json={"price": 1}, headers=auth_headers(rival.user))

    assert response.status_code == 403
