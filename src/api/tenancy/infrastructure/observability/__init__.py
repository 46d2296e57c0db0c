"""Domain-Oriented Observability for tenancy infrastructure."""

from tenancy.infrastructure.observability.data_access_probe import (
    DataAccessProbe,
    DefaultDataAccessProbe,
)
from tenancy.infrastructure.observability.lifecycle_probe import (
    DefaultLifecycleProbe,
    LifecycleProbe,
)
from tenancy.infrastructure.observability.repository_probe import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)

__all__ = [
    "DataAccessProbe",
    "DefaultDataAccessProbe",
    "DefaultLifecycleProbe",
    "DefaultTenancyRepositoryProbe",
    "LifecycleProbe",
    "TenancyRepositoryProbe",
]
