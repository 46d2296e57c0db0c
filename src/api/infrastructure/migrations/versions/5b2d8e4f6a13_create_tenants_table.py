"""create tenants table

Adds the deferred institutions.default_tenant_id foreign key, which could
not be created with institutions because the two tables reference each
other.

Revision ID: 5b2d8e4f6a13
Revises: 3f1a9c2e7b01
Create Date: 2026-09-28 10:09:47.203318

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "5b2d8e4f6a13"
down_revision: Union[str, Sequence[str], None] = "3f1a9c2e7b01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("slug", sa.String(length=63), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        # Nullable only until link-orphans has run for pre-institution tenants
        sa.Column("institution_id", sa.String(length=26), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "settings",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "limits",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_tenants"),
        sa.UniqueConstraint("slug", name="uq_tenants_slug"),
        sa.ForeignKeyConstraint(
            ["institution_id"],
            ["institutions.id"],
            name="fk_tenants_institution_id_institutions",
            ondelete="RESTRICT",
        ),
        sa.CheckConstraint(
            "status IN ('provisioning', 'active', 'suspended', "
            "'deprovisioning', 'deleted')",
            name="ck_tenants_status",
        ),
    )
    op.create_index("ix_tenants_institution_id", "tenants", ["institution_id"])

    op.create_foreign_key(
        "fk_institutions_default_tenant_id_tenants",
        "institutions",
        "tenants",
        ["default_tenant_id"],
        ["id"],
        ondelete="SET NULL",
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_constraint(
        "fk_institutions_default_tenant_id_tenants",
        "institutions",
        type_="foreignkey",
    )
    op.drop_index("ix_tenants_institution_id", table_name="tenants")
    op.drop_table("tenants")
