"""SQLAlchemy ORM model for the tenant_memberships table."""

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class TenantMembershipModel(Base, TimestampMixin):
    """ORM model for tenant_memberships table.

    Composite primary key (user_id, tenant_id): a user holds at most one
    membership per tenant.
    """

    __tablename__ = "tenant_memberships"

    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        primary_key=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        Index("ix_tenant_memberships_tenant_id_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<TenantMembershipModel(user_id={self.user_id}, "
            f"tenant_id={self.tenant_id}, role={self.role}, status={self.status})>"
        )
