"""API health tests against the fully configured application."""

import pytest
from httpx import ASGITransport, AsyncClient

from vendor_portal.main import create_app


@pytest.mark.asyncio
async def test_api_health_endpoints():
    """Test the health endpoints of the real application."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        # Test basic health endpoint
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "vendor-portal-api"

        # Test ready endpoint
        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["workers"] == {"departure_completion": False}

        # Test info endpoint
        response = await client.get("/info")
        assert response.status_code == 200
        data = response.json()
        assert data["features"]["atomic_seat_inventory"] is True
        assert "version" in data


@pytest.mark.asyncio
async def test_metrics_endpoint():
    """Test the metrics endpoint."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_openapi_docs():
    """Test that OpenAPI docs are available in development."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/docs")
        # Should be available in development mode
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_unknown_booking_is_problem_json():
    """Errors from the real app are rendered as problem details."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/v1/booking/get", json={"booking_id": "00000000-0000-0000-0000-000000000000"})
        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")
