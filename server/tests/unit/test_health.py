"""Unit tests for health endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_ping_rpc(test_client):
    """Test the RPC-style health ping endpoint."""
    response = await test_client.post("/v1/health/ping", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    """Requests carry an X-Request-ID back, reusing the caller's when given."""
    response = await test_client.post("/v1/health/ping", json={}, headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"

    response = await test_client.post("/v1/health/ping", json={})
    assert response.headers["X-Request-ID"]
