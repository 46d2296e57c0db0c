"""create users and system_admins tables

users.tenant_id is the legacy single-tenant pointer; memberships are
authoritative. system_admins is a separate identity namespace.

Revision ID: 7c4e1a9b2d35
Revises: 5b2d8e4f6a13
Create Date: 2026-09-28 10:15:02.884120

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "7c4e1a9b2d35"
down_revision: Union[str, Sequence[str], None] = "5b2d8e4f6a13"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        # External identity provider ids can exceed a ULID
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("institution_id", sa.String(length=26), nullable=True),
        sa.Column("tenant_id", sa.String(length=26), nullable=True),
        sa.Column(
            "active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.ForeignKeyConstraint(
            ["institution_id"],
            ["institutions.id"],
            name="fk_users_institution_id_institutions",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["tenant_id"],
            ["tenants.id"],
            name="fk_users_tenant_id_tenants",
            ondelete="SET NULL",
        ),
    )

    op.create_table(
        "system_admins",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_system_admins"),
        sa.UniqueConstraint("email", name="uq_system_admins_email"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("system_admins")
    op.drop_table("users")
