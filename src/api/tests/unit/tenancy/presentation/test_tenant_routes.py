"""Unit tests for tenant context routes.

Requests resolve through the real resolver over an in-memory directory;
only identity verification is replaced.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient

from shared_kernel.auth import IdentityClaims, TokenKind
from shared_kernel.middleware.observability import TenantContextProbe
from tenancy.application.resolver import TenantContextResolver
from tenancy.application.tenant_settings_service import TenantSettingsService
from tenancy.domain.value_objects import MembershipStatus, TenantRole, TenantStatus


@pytest.fixture
def caller() -> SimpleNamespace:
    """Mutable holder for the identity the next request carries."""
    return SimpleNamespace(claims=IdentityClaims(subject="user-ana"))


@pytest.fixture
def settings_service() -> AsyncMock:
    return AsyncMock(spec=TenantSettingsService)


@pytest.fixture
def test_client(
    directory, caller, tenancy_settings, settings_service, monkeypatch
) -> TestClient:
    from tenancy import presentation
    from tenancy.dependencies import tenant_context
    from tenancy.dependencies.authentication import get_identity_claims
    from tenancy.dependencies.tenant_settings import get_tenant_settings_service

    monkeypatch.setattr(
        tenant_context, "get_tenancy_settings", lambda: tenancy_settings
    )
    resolver = TenantContextResolver(
        directory=directory, probe=Mock(spec=TenantContextProbe)
    )

    app = FastAPI()
    app.dependency_overrides[get_identity_claims] = lambda: caller.claims
    app.dependency_overrides[tenant_context.get_tenant_resolver] = lambda: resolver
    app.dependency_overrides[tenant_context.get_tenant_directory] = lambda: directory
    app.dependency_overrides[get_tenant_settings_service] = lambda: settings_service
    app.include_router(presentation.router)

    return TestClient(app)


class TestCurrentTenant:
    """Tests for GET /tenants/current."""

    def test_header_selects_tenant(self, test_client, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant, role=TenantRole.ADMIN)

        response = test_client.get(
            "/tenants/current", headers={"X-Tenant-ID": tenant.id.value}
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["tenant_id"] == tenant.id.value
        assert body["institution_id"] == tenant.institution_id.value
        assert body["role"] == "admin"
        assert body["source"] == "header"

    def test_subdomain_selects_tenant(self, test_client, directory):
        tenant = directory.add_tenant("escola-norte")
        directory.add_membership("user-ana", tenant)

        response = test_client.get(
            "/tenants/current", headers={"Host": "escola-norte.merenda.app"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["source"] == "subdomain"

    def test_single_membership_needs_no_selector(self, test_client, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)

        response = test_client.get("/tenants/current")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["tenant_id"] == tenant.id.value

    def test_foreign_and_unknown_tenants_look_the_same(self, test_client, directory):
        """A caller cannot tell a tenant it may not access from a missing one."""
        mine = directory.add_tenant("semed-belem")
        other = directory.add_tenant("semed-recife")
        directory.add_membership("user-ana", mine)

        foreign = test_client.get(
            "/tenants/current", headers={"X-Tenant-ID": other.id.value}
        )
        unknown = test_client.get(
            "/tenants/current", headers={"X-Tenant-ID": "no-such-tenant"}
        )

        assert foreign.status_code == unknown.status_code == status.HTTP_403_FORBIDDEN
        assert foreign.json() == unknown.json() == {"detail": "Access denied"}

    def test_ambiguous_selection_lists_candidates(self, test_client, directory):
        first = directory.add_tenant("semed-belem")
        second = directory.add_tenant("semed-recife")
        directory.add_membership("user-ana", first)
        directory.add_membership("user-ana", second)

        response = test_client.get("/tenants/current")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        detail = response.json()["detail"]
        assert detail["message"] == "Tenant selection required"
        assert sorted(detail["tenants"]) == sorted([first.id.value, second.id.value])

    def test_suspended_tenant_is_denied(self, test_client, directory):
        tenant = directory.add_tenant("semed-belem", status=TenantStatus.SUSPENDED)
        directory.add_membership("user-ana", tenant)

        response = test_client.get(
            "/tenants/current", headers={"X-Tenant-ID": tenant.id.value}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_revoked_member_is_denied(self, test_client, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant, status=MembershipStatus.REVOKED)

        response = test_client.get(
            "/tenants/current", headers={"X-Tenant-ID": tenant.id.value}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_system_admin_token_is_refused(self, test_client, directory, caller):
        directory.add_admin("admin-root")
        caller.claims = IdentityClaims(
            subject="admin-root", kind=TokenKind.SYSTEM_ADMIN
        )

        response = test_client.get("/tenants/current")

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestMyTenants:
    """Tests for GET /tenants/mine."""

    def test_lists_memberships_without_selection(self, test_client, directory):
        first = directory.add_tenant("semed-belem")
        second = directory.add_tenant("semed-recife")
        directory.add_membership("user-ana", first, role=TenantRole.ADMIN)
        directory.add_membership("user-ana", second)

        response = test_client.get("/tenants/mine")

        assert response.status_code == status.HTTP_200_OK
        by_slug = {item["slug"]: item for item in response.json()}
        assert set(by_slug) == {"semed-belem", "semed-recife"}
        assert by_slug["semed-belem"]["role"] == "admin"
        assert by_slug["semed-recife"]["status"] == "active"

    def test_hides_deleted_tenants(self, test_client, directory):
        tenant = directory.add_tenant("semed-belem", status=TenantStatus.DELETED)
        directory.add_membership("user-ana", tenant)

        response = test_client.get("/tenants/mine")

        assert response.json() == []

    def test_system_admin_is_refused(self, test_client, caller):
        caller.claims = IdentityClaims(
            subject="admin-root", kind=TokenKind.SYSTEM_ADMIN
        )

        response = test_client.get("/tenants/mine")

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestAuthentication:
    def test_missing_token_is_401(self, directory):
        from tenancy import presentation
        from tenancy.dependencies.tenant_context import get_tenant_resolver

        app = FastAPI()
        app.dependency_overrides[get_tenant_resolver] = lambda: TenantContextResolver(
            directory=directory, probe=Mock(spec=TenantContextProbe)
        )
        app.include_router(presentation.router)

        response = TestClient(app).get("/tenants/current")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["www-authenticate"] == "Bearer"


class TestCurrentSettings:
    """Tests for /tenants/current/settings."""

    def test_member_reads_settings(self, test_client, directory, settings_service):
        tenant = directory.add_tenant("escola-norte")
        directory.add_membership("user-ana", tenant)
        tenant.settings = {"ciclo_cardapio_semanas": 4}
        settings_service.get_settings.return_value = tenant

        response = test_client.get("/tenants/current/settings")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "tenant_id": tenant.id.value,
            "settings": {"ciclo_cardapio_semanas": 4},
        }
        settings_service.get_settings.assert_awaited_once_with(tenant.id)

    def test_member_cannot_change_settings(
        self, test_client, directory, settings_service
    ):
        tenant = directory.add_tenant("escola-norte")
        directory.add_membership("user-ana", tenant, role=TenantRole.MEMBER)

        response = test_client.patch(
            "/tenants/current/settings", json={"changes": {"tema": "escuro"}}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        settings_service.update_settings.assert_not_called()

    def test_admin_changes_own_tenant(self, test_client, directory, settings_service):
        tenant = directory.add_tenant("escola-norte")
        directory.add_membership("user-ana", tenant, role=TenantRole.ADMIN)
        settings_service.update_settings.return_value = tenant

        response = test_client.patch(
            "/tenants/current/settings",
            headers={"X-Tenant-ID": tenant.id.value},
            json={"changes": {"tema": "escuro", "logo": None}},
        )

        assert response.status_code == status.HTTP_200_OK
        settings_service.update_settings.assert_awaited_once_with(
            tenant.id, {"tema": "escuro", "logo": None}, changed_by="user-ana"
        )

    def test_empty_setting_name(self, test_client, directory, settings_service):
        tenant = directory.add_tenant("escola-norte")
        directory.add_membership("user-ana", tenant, role=TenantRole.ADMIN)
        settings_service.update_settings.side_effect = ValueError(
            "Setting names must not be empty"
        )

        response = test_client.patch(
            "/tenants/current/settings", json={"changes": {"": 1}}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Setting names must not be empty"
