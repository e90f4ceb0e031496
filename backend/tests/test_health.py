# tests/test_health.py — Health, root and middleware behaviour
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client: AsyncClient):
        res = await client.get("/health")
        assert res.status_code == 200
        data = res.json()
        assert data["status"] in ("healthy", "degraded")
        assert data["version"] == "1.0.0"
        assert data["environment"] == "test"

    async def test_root(self, client: AsyncClient):
        res = await client.get("/")
        assert res.status_code == 200
        assert res.json()["name"] == "DevTrack"

    async def test_correlation_id_echoed(self, client: AsyncClient):
        res = await client.get("/", headers={"X-Correlation-ID": "abc-123"})
        assert res.headers["x-correlation-id"] == "abc-123"

    async def test_security_headers(self, client: AsyncClient):
        res = await client.get("/")
        assert res.headers["x-content-type-options"] == "nosniff"

    async def test_validation_error_shape(self, client: AsyncClient, manager_user):
        res = await client.post("/api/v1/projects", headers=get_auth_headers(manager_user), json={})
        assert res.status_code == 422
        assert "detail" in res.json()
