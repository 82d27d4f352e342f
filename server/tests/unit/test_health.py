"""Unit tests for health endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_check(test_client):
    """Test the health check endpoint."""
    response = await test_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "tours-api"
    assert "version" in data
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_ready_check(test_client):
    """Test the readiness check endpoint."""
    response = await test_client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"database": "ok"}


@pytest.mark.asyncio
async def test_ready_check_database_down(test_app, test_client):
    """Readiness reports 503 when the database cannot be reached."""
    from tours_api.core.database import get_db

    class BrokenSession:
        async def execute(self, *args, **kwargs):
            raise ConnectionError("database is gone")

    async def broken_db():
        yield BrokenSession()

    test_app.dependency_overrides[get_db] = broken_db

    response = await test_client.get("/ready")
    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "unavailable"
    assert data["checks"] == {"database": "unavailable"}


@pytest.mark.asyncio
async def test_info_endpoint(test_client):
    """Test the service info endpoint."""
    response = await test_client.get("/info")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "tours-api"
    assert "version" in data
    assert data["endpoints"]["tours"] == "/api/v1/tours"
