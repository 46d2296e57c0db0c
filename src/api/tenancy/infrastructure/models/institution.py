"""SQLAlchemy ORM model for the institutions table."""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class InstitutionModel(Base, TimestampMixin):
    """ORM model for institutions table.

    ``default_tenant_id`` references tenants.id through a constraint created
    after the tenants table (the two tables reference each other).
    """

    __tablename__ = "institutions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    slug: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    legal_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    plan: Mapped[str] = mapped_column(String(50), nullable=False, default="basic")
    max_tenants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_users: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_schools: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    default_tenant_id: Mapped[Optional[str]] = mapped_column(
        String(26),
        ForeignKey("tenants.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<InstitutionModel(id={self.id}, slug={self.slug})>"
