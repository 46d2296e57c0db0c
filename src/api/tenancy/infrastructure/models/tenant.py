"""SQLAlchemy ORM model for the tenants table.

Tenants are the isolation boundary: every tenant-owned business table
references tenants.id.
"""

from typing import Any, Optional

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class TenantModel(Base, TimestampMixin):
    """ORM model for tenants table.

    Note: ``institution_id`` is nullable only for tenants created before
    institutions existed; ``link_orphan_tenants`` backfills it.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    slug: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    institution_id: Mapped[Optional[str]] = mapped_column(
        String(26),
        ForeignKey("institutions.id", ondelete="RESTRICT"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=dict
    )
    limits: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (Index("ix_tenants_institution_id", "institution_id"),)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<TenantModel(id={self.id}, slug={self.slug}, status={self.status})>"
