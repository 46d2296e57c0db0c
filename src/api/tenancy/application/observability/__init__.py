"""Domain-Oriented Observability for the tenancy application layer."""

from tenancy.application.observability.directory_probe import (
    DefaultDirectoryProbe,
    DirectoryProbe,
)
from tenancy.application.observability.membership_service_probe import (
    DefaultMembershipServiceProbe,
    MembershipServiceProbe,
)

from tenancy.application.observability.tenant_settings_probe import (
    DefaultTenantSettingsProbe,
    TenantSettingsProbe,
)

__all__ = [
    "DirectoryProbe",
    "DefaultDirectoryProbe",
    "MembershipServiceProbe",
    "DefaultMembershipServiceProbe",
    "TenantSettingsProbe",
    "DefaultTenantSettingsProbe",
]
