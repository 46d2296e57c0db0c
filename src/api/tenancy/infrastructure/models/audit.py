"""SQLAlchemy ORM models for the tenancy audit tables."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, _utc_now


class AuditLogModel(Base):
    """ORM model for tenant_audit_log table.

    Append-only. ``tenant_id`` has no foreign key so entries outlive the
    tenant they describe.
    """

    __tablename__ = "tenant_audit_log"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    detail: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), insert_default=_utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_tenant_audit_log_tenant_id_occurred_at", "tenant_id", "occurred_at"),
    )


class LifecycleRunModel(Base):
    """ORM model for tenant_lifecycle_runs table.

    One row per invocation of a lifecycle operation; ``phases`` lists the
    phases that committed, in order.
    """

    __tablename__ = "tenant_lifecycle_runs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    operation: Mapped[str] = mapped_column(String(64), nullable=False)
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    phases: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), insert_default=_utc_now, nullable=False
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_tenant_lifecycle_runs_operation_target", "operation", "target"),
    )
