"""SQLAlchemy ORM models for the users and system_admins tables.

The two identity tables are disjoint: a system admin is never a tenant user.
"""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class UserModel(Base, TimestampMixin):
    """ORM model for users table.

    Note: id is VARCHAR(255) to accommodate external identity provider ids.
    ``tenant_id`` is the legacy single-tenant pointer (a selection hint).
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    institution_id: Mapped[Optional[str]] = mapped_column(
        String(26),
        ForeignKey("institutions.id", ondelete="SET NULL"),
        nullable=True,
    )
    tenant_id: Mapped[Optional[str]] = mapped_column(
        String(26),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<UserModel(id={self.id}, email={self.email})>"


class SystemAdminModel(Base, TimestampMixin):
    """ORM model for system_admins table."""

    __tablename__ = "system_admins"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<SystemAdminModel(id={self.id}, email={self.email})>"
