"""Mapping of tenancy domain events onto audit log rows.

The tenant an event concerns goes to ``tenant_audit_log.tenant_id``; the
remaining fields become the JSON ``detail`` column.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Optional, get_args

from tenancy.domain.events import DomainEvent

AUDITED_EVENTS: frozenset[type] = frozenset(get_args(DomainEvent))


@dataclass(frozen=True)
class AuditEntry:
    event_type: str
    tenant_id: Optional[str]
    detail: dict[str, Any]


def to_audit_entry(event: DomainEvent) -> AuditEntry:
    """Split a domain event into its audit row columns.

    Raises:
        ValueError: If the event is not a tenancy domain event
    """
    if type(event) not in AUDITED_EVENTS:
        raise ValueError(f"Not a tenancy domain event: {type(event).__name__}")

    detail: dict[str, Any] = {}
    for f in fields(event):
        if f.name == "tenant_id":
            continue
        value = getattr(event, f.name)
        detail[f.name] = value.isoformat() if isinstance(value, datetime) else value

    return AuditEntry(
        event_type=type(event).__name__,
        tenant_id=getattr(event, "tenant_id", None),
        detail=detail,
    )
