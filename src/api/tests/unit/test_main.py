"""Unit tests for main FastAPI application configuration."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client():
    from main import app

    yield TestClient(app)
    app.dependency_overrides.clear()


def _route_paths() -> set[str]:
    from main import app

    return {getattr(route, "path", "") for route in app.routes}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_database_health(self, client):
        from infrastructure.database.dependencies import get_read_engine
        from main import app

        connection = AsyncMock()
        engine = MagicMock()
        engine.connect.return_value.__aenter__.return_value = connection
        engine.connect.return_value.__aexit__.return_value = False
        app.dependency_overrides[get_read_engine] = lambda: engine

        response = client.get("/health/db")

        assert response.json() == {"status": "ok", "connected": True}
        connection.execute.assert_awaited_once()

    def test_database_unreachable(self, client):
        from infrastructure.database.dependencies import get_read_engine
        from main import app

        engine = MagicMock()
        engine.connect.side_effect = OSError("connection refused")
        app.dependency_overrides[get_read_engine] = lambda: engine

        response = client.get("/health/db")

        assert response.status_code == 200
        assert response.json()["connected"] is False
        assert "connection refused" in response.json()["error"]


class TestRouting:
    """Tenant and system-admin routes live in separate namespaces."""

    def test_tenant_routes_are_mounted(self):
        paths = _route_paths()

        assert "/tenants/current" in paths
        assert "/tenants/current/members" in paths
        assert "/tenants/current/records/{table}" in paths

    def test_admin_routes_use_admin_prefix(self):
        paths = _route_paths()

        assert "/admin/institutions" in paths
        assert "/admin/tenants/{tenant_id}" in paths
        assert "/admin/lifecycle-runs" in paths
        assert "/institutions" not in paths

    def test_tenant_routes_require_a_token(self, client):
        response = client.get("/tenants/current")

        assert response.status_code == 401
