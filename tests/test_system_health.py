"""Tests for system health endpoint."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from noteworthy.api.v1.system import ServiceHealth


@pytest.mark.asyncio
async def test_system_health_all_ok(client: AsyncClient):
    """GET /v1/system/health reports database and Redis."""
    with patch(
        "noteworthy.api.v1.system._check_redis",
        AsyncMock(return_value=ServiceHealth(status="ok", latency_ms=1)),
    ):
        resp = await client.get("/v1/system/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # SQLite in tests
    assert data["database"]["status"] == "ok"
    assert data["redis"]["status"] == "ok"


@pytest.mark.asyncio
async def test_system_health_degrades_when_redis_is_down(client: AsyncClient):
    with patch(
        "noteworthy.api.v1.system._check_redis",
        AsyncMock(return_value=ServiceHealth(status="error", detail="Connection refused")),
    ):
        resp = await client.get("/v1/system/health")

    data = resp.json()
    assert data["status"] == "degraded"
    assert data["redis"]["detail"] == "Connection refused"
