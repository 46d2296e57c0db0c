"""create tenant_memberships table

Revision ID: 9e6f3b1c4d57
Revises: 7c4e1a9b2d35
Create Date: 2026-09-28 10:21:36.015547

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "9e6f3b1c4d57"
down_revision: Union[str, Sequence[str], None] = "7c4e1a9b2d35"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "tenant_memberships",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("tenant_id", sa.String(length=26), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        # One membership per (user, tenant)
        sa.PrimaryKeyConstraint(
            "user_id", "tenant_id", name="pk_tenant_memberships"
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_tenant_memberships_user_id_users",
            ondelete="CASCADE",
        ),
        # Deprovisioning removes memberships explicitly before the tenant
        sa.ForeignKeyConstraint(
            ["tenant_id"],
            ["tenants.id"],
            name="fk_tenant_memberships_tenant_id_tenants",
            ondelete="RESTRICT",
        ),
        sa.CheckConstraint(
            "role IN ('admin', 'member')", name="ck_tenant_memberships_role"
        ),
        sa.CheckConstraint(
            "status IN ('invited', 'active', 'revoked')",
            name="ck_tenant_memberships_status",
        ),
    )
    op.create_index(
        "ix_tenant_memberships_tenant_id_status",
        "tenant_memberships",
        ["tenant_id", "status"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(
        "ix_tenant_memberships_tenant_id_status", table_name="tenant_memberships"
    )
    op.drop_table("tenant_memberships")
