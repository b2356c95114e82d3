"""
Integration test for health endpoint.
Verifies the FastAPI app responds with 200 on GET /health.
"""
import pytest
from httpx import AsyncClient, ASGITransport

from nearserve.api.app import app


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health_endpoint():
    """Test that /health returns 200 with {status: ok}."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_correlation_id_is_echoed():
    """A caller-supplied X-Correlation-ID comes back on the response."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health", headers={"X-Correlation-ID": "corr-123"})
        assert response.headers["X-Correlation-ID"] == "corr-123"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unknown_route_uses_error_body():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/nowhere", headers={"X-Correlation-ID": "corr-404"})
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found", "correlation_id": "corr-404"}
