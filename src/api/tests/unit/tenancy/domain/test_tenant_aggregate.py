"""Unit tests for the Tenant aggregate and its lifecycle state machine."""

from datetime import UTC, datetime

import pytest

from tenancy.domain.aggregates import ALLOWED_TRANSITIONS, Tenant
from tenancy.domain.events import (
    TenantCreated,
    TenantLinkedToInstitution,
    TenantSettingsChanged,
    TenantStatusChanged,
)
from tenancy.domain.exceptions import (
    InvalidTenantTransitionError,
    TenantAlreadyLinkedError,
    TenantSettingsLockedError,
)
from tenancy.domain.value_objects import InstitutionId, Slug, TenantId, TenantStatus


def _tenant(status: TenantStatus, institution_id=None) -> Tenant:
    return Tenant(
        id=TenantId.generate(),
        slug=Slug("escola-norte"),
        name="Escola Norte",
        institution_id=institution_id,
        status=status,
    )


class TestTenantFactory:
    """Tests for Tenant.create() factory method."""

    def test_factory_starts_in_provisioning(self):
        """New tenants are not usable until provisioning finishes."""
        tenant = Tenant.create(
            slug=Slug("semed-belem"),
            name="SEMED Belém",
            institution_id=InstitutionId.generate(),
        )

        assert tenant.status == TenantStatus.PROVISIONING
        assert not tenant.serves_data
        assert not tenant.is_resolvable

    def test_factory_records_tenant_created_event(self):
        """Factory should record a TenantCreated event with a UTC timestamp."""
        institution_id = InstitutionId.generate()
        tenant = Tenant.create(
            slug=Slug("semed-belem"), name="SEMED Belém", institution_id=institution_id
        )
        events = tenant.collect_events()

        assert len(events) == 1
        assert isinstance(events[0], TenantCreated)
        assert events[0].tenant_id == tenant.id.value
        assert events[0].slug == "semed-belem"
        assert events[0].institution_id == institution_id.value
        assert events[0].occurred_at.tzinfo == UTC
        assert (datetime.now(UTC) - events[0].occurred_at).total_seconds() < 1

    def test_factory_copies_settings(self):
        """Settings passed in are copied, not shared."""
        settings = {"theme": "green"}
        tenant = Tenant.create(
            slug=Slug("semed-belem"),
            name="SEMED Belém",
            institution_id=InstitutionId.generate(),
            settings=settings,
        )
        settings["theme"] = "red"

        assert tenant.settings == {"theme": "green"}

    def test_collect_events_clears_pending(self):
        """Events are handed out once."""
        tenant = Tenant.create(
            slug=Slug("semed-belem"),
            name="SEMED Belém",
            institution_id=InstitutionId.generate(),
        )
        tenant.collect_events()

        assert tenant.collect_events() == []


class TestTenantStatusTransitions:
    """Tests for the provisioning/active/suspended/deprovisioning/deleted graph."""

    def test_provisioning_activates(self):
        tenant = _tenant(TenantStatus.PROVISIONING)

        tenant.activate()

        assert tenant.status == TenantStatus.ACTIVE
        assert tenant.serves_data

    def test_active_suspends_with_reason(self):
        """Suspension records the reason on the status event."""
        tenant = _tenant(TenantStatus.ACTIVE)

        tenant.suspend(reason="contract expired")

        assert tenant.status == TenantStatus.SUSPENDED
        events = tenant.collect_events()
        assert len(events) == 1
        assert isinstance(events[0], TenantStatusChanged)
        assert events[0].from_status == "active"
        assert events[0].to_status == "suspended"
        assert events[0].reason == "contract expired"

    def test_suspended_tenant_resolves_but_serves_no_data(self):
        """Members of a suspended tenant must be told it is suspended."""
        tenant = _tenant(TenantStatus.SUSPENDED)

        assert tenant.is_resolvable
        assert not tenant.serves_data

    def test_suspended_reactivates(self):
        tenant = _tenant(TenantStatus.SUSPENDED)

        tenant.activate()

        assert tenant.status == TenantStatus.ACTIVE

    def test_deprovisioning_then_deleted(self):
        tenant = _tenant(TenantStatus.ACTIVE)

        tenant.begin_deprovisioning(reason="merged")
        tenant.mark_deleted()

        assert tenant.status == TenantStatus.DELETED
        assert not tenant.is_resolvable

    def test_deleted_is_terminal(self):
        """No transition leaves DELETED."""
        tenant = _tenant(TenantStatus.DELETED)

        with pytest.raises(InvalidTenantTransitionError) as exc_info:
            tenant.activate()

        assert exc_info.value.current == "deleted"
        assert exc_info.value.target == "active"
        assert ALLOWED_TRANSITIONS[TenantStatus.DELETED] == frozenset()

    def test_provisioning_cannot_be_suspended(self):
        tenant = _tenant(TenantStatus.PROVISIONING)

        with pytest.raises(InvalidTenantTransitionError):
            tenant.suspend()

    def test_deleted_only_reachable_from_deprovisioning(self):
        tenant = _tenant(TenantStatus.ACTIVE)

        with pytest.raises(InvalidTenantTransitionError):
            tenant.mark_deleted()

    def test_same_status_is_a_no_op(self):
        """Repeating a transition records nothing."""
        tenant = _tenant(TenantStatus.SUSPENDED)

        tenant.suspend()

        assert tenant.status == TenantStatus.SUSPENDED
        assert tenant.collect_events() == []

    @pytest.mark.parametrize(
        "current,target",
        [
            (TenantStatus.PROVISIONING, TenantStatus.ACTIVE),
            (TenantStatus.ACTIVE, TenantStatus.SUSPENDED),
            (TenantStatus.SUSPENDED, TenantStatus.DEPROVISIONING),
            (TenantStatus.DEPROVISIONING, TenantStatus.DELETED),
        ],
    )
    def test_can_transition_to_allowed_targets(self, current, target):
        assert _tenant(current).can_transition_to(target)


class TestLinkInstitution:
    """Tests for attaching tenants created before institutions existed."""

    def test_links_orphan_tenant(self):
        tenant = _tenant(TenantStatus.ACTIVE)
        institution_id = InstitutionId.generate()

        tenant.link_institution(institution_id)

        assert tenant.institution_id == institution_id
        events = tenant.collect_events()
        assert isinstance(events[0], TenantLinkedToInstitution)

    def test_relinking_same_institution_is_a_no_op(self):
        institution_id = InstitutionId.generate()
        tenant = _tenant(TenantStatus.ACTIVE, institution_id=institution_id)

        tenant.link_institution(institution_id)

        assert tenant.collect_events() == []

    def test_refuses_to_move_tenant_to_another_institution(self):
        tenant = _tenant(TenantStatus.ACTIVE, institution_id=InstitutionId.generate())

        with pytest.raises(TenantAlreadyLinkedError):
            tenant.link_institution(InstitutionId.generate())


class TestUpdateSettings:
    """Settings merge; a None value removes the key."""

    def test_merges_and_removes(self):
        tenant = _tenant(TenantStatus.ACTIVE)
        tenant.settings = {"tema": "claro", "logo": "norte.png"}

        changed = tenant.update_settings(
            {"tema": "escuro", "logo": None, "ciclo_cardapio_semanas": 4},
            changed_by="user-ana",
        )

        assert changed is True
        assert tenant.settings == {"tema": "escuro", "ciclo_cardapio_semanas": 4}
        events = tenant.collect_events()
        assert len(events) == 1
        assert isinstance(events[0], TenantSettingsChanged)
        assert events[0].changed_keys == ("ciclo_cardapio_semanas", "logo", "tema")
        assert events[0].removed_keys == ("logo",)
        assert events[0].changed_by == "user-ana"

    def test_same_values_record_nothing(self):
        tenant = _tenant(TenantStatus.ACTIVE)
        tenant.settings = {"tema": "claro"}

        assert tenant.update_settings({"tema": "claro", "logo": None}) is False
        assert tenant.collect_events() == []

    def test_suspended_tenant_can_still_be_configured(self):
        tenant = _tenant(TenantStatus.SUSPENDED)

        assert tenant.update_settings({"tema": "claro"}) is True

    @pytest.mark.parametrize(
        "status", [TenantStatus.DEPROVISIONING, TenantStatus.DELETED]
    )
    def test_frozen_while_deprovisioning(self, status):
        tenant = _tenant(status)

        with pytest.raises(TenantSettingsLockedError):
            tenant.update_settings({"tema": "claro"})
        assert tenant.settings == {}

    def test_empty_key_is_rejected(self):
        tenant = _tenant(TenantStatus.ACTIVE)

        with pytest.raises(ValueError):
            tenant.update_settings({"": 1})
