"""Unit tests for TenantContextResolver.

Every scenario runs against an in-memory directory. Resolution must
produce exactly one tenant or raise; it never falls back to a guess.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from shared_kernel.auth import IdentityClaims, TokenKind
from shared_kernel.middleware.observability import TenantContextProbe
from tenancy.application.resolver import (
    TenantContextResolver,
    TenantSelector,
    subdomain_from_host,
)
from tenancy.domain.value_objects import MembershipStatus, TenantRole, TenantStatus
from tenancy.ports.exceptions import (
    AmbiguousTenantError,
    SystemAdminRequiredError,
    TenantMismatchError,
    TenantSuspendedError,
    UnauthenticatedError,
)


@pytest.fixture
def mock_probe():
    """Mock resolution probe."""
    return Mock(spec=TenantContextProbe)


@pytest.fixture
def resolver(directory, mock_probe) -> TenantContextResolver:
    return TenantContextResolver(directory=directory, probe=mock_probe)


def _user(subject: str = "user-ana", default_tenant_id: str | None = None):
    return IdentityClaims(subject=subject, default_tenant_id=default_tenant_id)


class TestExplicitSelection:
    """Header and subdomain selection."""

    @pytest.mark.asyncio
    async def test_header_with_tenant_id(self, resolver, directory, mock_probe):
        """A member selecting a tenant by id gets that tenant."""
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant, role=TenantRole.ADMIN)

        context = await resolver.resolve(
            _user(), TenantSelector(header=tenant.id.value)
        )

        assert context.tenant_id == tenant.id.value
        assert context.institution_id == tenant.institution_id.value
        assert context.role == "admin"
        assert context.user_id == "user-ana"
        assert context.source == "header"
        mock_probe.tenant_resolved.assert_called_once_with(
            tenant_id=tenant.id.value, user_id="user-ana", source="header"
        )

    @pytest.mark.asyncio
    async def test_header_with_slug(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)

        context = await resolver.resolve(_user(), TenantSelector(header="semed-belem"))

        assert context.tenant_id == tenant.id.value
        assert context.role == "member"

    @pytest.mark.asyncio
    async def test_subdomain_selection(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)

        context = await resolver.resolve(
            _user(), TenantSelector(subdomain="semed-belem")
        )

        assert context.tenant_id == tenant.id.value
        assert context.source == "subdomain"

    @pytest.mark.asyncio
    async def test_header_and_subdomain_naming_same_tenant(self, resolver, directory):
        """Agreeing selectors resolve; the header is reported as the source."""
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)

        context = await resolver.resolve(
            _user(),
            TenantSelector(header=tenant.id.value, subdomain="semed-belem"),
        )

        assert context.tenant_id == tenant.id.value
        assert context.source == "header"

    @pytest.mark.asyncio
    async def test_conflicting_header_and_subdomain(
        self, resolver, directory, mock_probe
    ):
        """Selectors naming different tenants fail, even for a member of both."""
        first = directory.add_tenant("semed-belem")
        second = directory.add_tenant("semed-ananindeua")
        directory.add_membership("user-ana", first)
        directory.add_membership("user-ana", second)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(
                _user(),
                TenantSelector(header=first.id.value, subdomain="semed-ananindeua"),
            )

        mock_probe.conflicting_selectors.assert_called_once()

    @pytest.mark.asyncio
    async def test_selector_wins_over_token_default(self, resolver, directory):
        """An explicit selector takes priority over the token's default tenant."""
        default = directory.add_tenant("semed-belem")
        selected = directory.add_tenant("semed-ananindeua")
        directory.add_membership("user-ana", default)
        directory.add_membership("user-ana", selected)

        context = await resolver.resolve(
            _user(default_tenant_id=default.id.value),
            TenantSelector(header="semed-ananindeua"),
        )

        assert context.tenant_id == selected.id.value

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, resolver, mock_probe):
        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(), TenantSelector(header="does-not-exist"))

        mock_probe.tenant_mismatch.assert_called_once_with(
            user_id="user-ana", selector="header", reason="unknown tenant"
        )

    @pytest.mark.asyncio
    async def test_non_member_is_refused(self, resolver, directory):
        """A valid tenant the caller does not belong to is not accessible."""
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-bia", tenant)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(), TenantSelector(header=tenant.id.value))

    @pytest.mark.parametrize(
        "status", [MembershipStatus.INVITED, MembershipStatus.REVOKED]
    )
    @pytest.mark.asyncio
    async def test_inactive_membership_is_refused(self, resolver, directory, status):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant, status=status)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(), TenantSelector(header="semed-belem"))


class TestTenantStatus:
    """Status checks happen after membership checks."""

    @pytest.mark.asyncio
    async def test_suspended_tenant_member(self, resolver, directory, mock_probe):
        tenant = directory.add_tenant("semed-belem", status=TenantStatus.SUSPENDED)
        directory.add_membership("user-ana", tenant)

        with pytest.raises(TenantSuspendedError) as exc_info:
            await resolver.resolve(_user(), TenantSelector(header="semed-belem"))

        assert exc_info.value.tenant_id == tenant.id.value
        mock_probe.tenant_suspended.assert_called_once_with(
            tenant_id=tenant.id.value, user_id="user-ana"
        )

    @pytest.mark.asyncio
    async def test_suspended_tenant_non_member_learns_nothing(
        self, resolver, directory
    ):
        """A non-member gets the generic mismatch, not the suspension."""
        directory.add_tenant("semed-belem", status=TenantStatus.SUSPENDED)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(), TenantSelector(header="semed-belem"))

    @pytest.mark.parametrize(
        "status", [TenantStatus.PROVISIONING, TenantStatus.DEPROVISIONING]
    )
    @pytest.mark.asyncio
    async def test_tenant_not_serving_data(self, resolver, directory, status):
        tenant = directory.add_tenant("semed-belem", status=status)
        directory.add_membership("user-ana", tenant)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(), TenantSelector(header=tenant.id.value))

    @pytest.mark.asyncio
    async def test_deleted_tenant_is_unknown(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem", status=TenantStatus.DELETED)
        directory.add_membership("user-ana", tenant)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(), TenantSelector(header=tenant.id.value))


class TestImplicitSelection:
    """Token default tenant and single-membership fallback."""

    @pytest.mark.asyncio
    async def test_token_default_tenant(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)

        context = await resolver.resolve(_user(default_tenant_id=tenant.id.value))

        assert context.tenant_id == tenant.id.value
        assert context.source == "token_default"

    @pytest.mark.asyncio
    async def test_stale_token_default_is_rejected(
        self, resolver, directory, mock_probe
    ):
        """A default tenant whose membership was revoked is not used."""
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant, status=MembershipStatus.REVOKED)
        other = directory.add_tenant("semed-ananindeua")
        directory.add_membership("user-ana", other)

        with pytest.raises(TenantMismatchError):
            await resolver.resolve(_user(default_tenant_id=tenant.id.value))

        mock_probe.stale_default_tenant.assert_called_once_with(
            user_id="user-ana", tenant_id=tenant.id.value
        )

    @pytest.mark.asyncio
    async def test_single_active_membership(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)
        revoked = directory.add_tenant("semed-ananindeua")
        directory.add_membership(
            "user-ana", revoked, status=MembershipStatus.REVOKED
        )

        context = await resolver.resolve(_user())

        assert context.tenant_id == tenant.id.value
        assert context.source == "single_membership"

    @pytest.mark.asyncio
    async def test_no_membership_is_ambiguous(self, resolver, mock_probe):
        with pytest.raises(AmbiguousTenantError) as exc_info:
            await resolver.resolve(_user())

        assert exc_info.value.candidates == ()
        mock_probe.ambiguous_tenant.assert_called_once_with(
            user_id="user-ana", candidate_count=0
        )

    @pytest.mark.asyncio
    async def test_several_memberships_are_ambiguous(self, resolver, directory):
        """With several tenants the caller must choose; the choices are returned."""
        first = directory.add_tenant("semed-belem")
        second = directory.add_tenant("semed-ananindeua")
        directory.add_membership("user-ana", first)
        directory.add_membership("user-ana", second)

        with pytest.raises(AmbiguousTenantError) as exc_info:
            await resolver.resolve(_user())

        assert set(exc_info.value.candidates) == {first.id.value, second.id.value}

    @pytest.mark.asyncio
    async def test_single_membership_in_suspended_tenant(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem", status=TenantStatus.SUSPENDED)
        directory.add_membership("user-ana", tenant)

        with pytest.raises(TenantSuspendedError):
            await resolver.resolve(_user())


class TestSystemAdmin:
    """System-admin credentials live in their own namespace."""

    @pytest.mark.asyncio
    async def test_system_admin_on_system_route(self, resolver, directory):
        directory.add_admin("admin-root")
        claims = IdentityClaims(subject="admin-root", kind=TokenKind.SYSTEM_ADMIN)

        context = await resolver.resolve(claims, system_route=True)

        assert context.is_system_scope
        assert context.tenant_id is None
        assert context.user_id == "admin-root"
        assert context.source == "system"

    @pytest.mark.asyncio
    async def test_system_admin_on_tenant_route(self, resolver, directory, mock_probe):
        """A system admin cannot act inside a tenant through tenant routes."""
        tenant = directory.add_tenant("semed-belem")
        directory.add_admin("admin-root")
        claims = IdentityClaims(subject="admin-root", kind=TokenKind.SYSTEM_ADMIN)

        with pytest.raises(SystemAdminRequiredError):
            await resolver.resolve(claims, TenantSelector(header=tenant.id.value))

        mock_probe.system_admin_on_tenant_route.assert_called_once_with(
            admin_id="admin-root"
        )

    @pytest.mark.asyncio
    async def test_unknown_system_admin(self, resolver):
        claims = IdentityClaims(subject="admin-ghost", kind=TokenKind.SYSTEM_ADMIN)

        with pytest.raises(UnauthenticatedError):
            await resolver.resolve(claims, system_route=True)

    @pytest.mark.asyncio
    async def test_inactive_system_admin(self, resolver, directory):
        directory.add_admin("admin-root", active=False)
        claims = IdentityClaims(subject="admin-root", kind=TokenKind.SYSTEM_ADMIN)

        with pytest.raises(UnauthenticatedError):
            await resolver.resolve(claims, system_route=True)

    @pytest.mark.asyncio
    async def test_tenant_user_on_system_route(self, resolver, directory, mock_probe):
        """Tenant admins are not system admins."""
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant, role=TenantRole.ADMIN)

        with pytest.raises(SystemAdminRequiredError):
            await resolver.resolve(_user(), system_route=True)

        mock_probe.system_route_denied.assert_called_once_with(user_id="user-ana")


class TestResolutionIsReadOnly:
    """Resolution only reads, so retrying gives the same answer."""

    @pytest.mark.asyncio
    async def test_repeated_resolution_is_identical(self, resolver, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)

        first = await resolver.resolve(_user(), TenantSelector(header="semed-belem"))
        second = await resolver.resolve(_user(), TenantSelector(header="semed-belem"))

        assert first == second


class TestSubdomainFromHost:
    """Tests for extracting the tenant label from the Host header."""

    @pytest.mark.parametrize(
        "host,expected",
        [
            ("semed-belem.merenda.app", "semed-belem"),
            ("SEMED-Belem.Merenda.App:8443", "semed-belem"),
            ("semed-belem.merenda.app.", "semed-belem"),
            ("merenda.app", None),
            ("www.merenda.app", None),
            ("a.b.merenda.app", None),
            ("semed-belem.other.app", None),
            (None, None),
        ],
    )
    def test_extracts_single_label(self, host, expected):
        assert subdomain_from_host(host, "merenda.app") == expected

    def test_disabled_without_base_domain(self):
        assert subdomain_from_host("semed-belem.merenda.app", None) is None
