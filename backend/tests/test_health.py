"""Tests for health check endpoint."""

import pytest
from httpx import AsyncClient

from chatrelay.dependencies import get_conversation_store
from chatrelay.main import app


class _UnreachableStore:
    async def ping(self) -> None:
        raise ConnectionError("connection refused")


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Health endpoint returns 200 with service status."""
    response = await client.get("/api/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["store"] == {"backend": "memory", "status": "healthy"}


@pytest.mark.asyncio
async def test_health_check_reports_degraded_store(client: AsyncClient) -> None:
    app.dependency_overrides[get_conversation_store] = lambda: _UnreachableStore()

    response = await client.get("/api/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "degraded"
    assert data["services"]["store"]["status"] == "unhealthy"
    assert "connection refused" in data["services"]["store"]["error"]
