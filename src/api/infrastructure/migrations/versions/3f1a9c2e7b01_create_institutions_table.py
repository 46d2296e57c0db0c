"""create institutions table

Revision ID: 3f1a9c2e7b01
Revises:
Create Date: 2026-09-28 10:04:11.512093

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "institutions",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("slug", sa.String(length=63), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("legal_name", sa.String(length=255), nullable=True),
        sa.Column("document", sa.String(length=32), nullable=True),  # CNPJ
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column(
            "plan",
            sa.String(length=50),
            nullable=False,
            server_default="basic",
        ),
        sa.Column("max_tenants", sa.Integer(), nullable=True),
        sa.Column("max_users", sa.Integer(), nullable=True),
        sa.Column("max_schools", sa.Integer(), nullable=True),
        # FK to tenants is added once tenants exists
        sa.Column("default_tenant_id", sa.String(length=26), nullable=True),
        sa.Column(
            "active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_institutions"),
        sa.UniqueConstraint("slug", name="uq_institutions_slug"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("institutions")
