"""create tenant audit tables

tenant_audit_log records cross-tenant violations, admin data access and
directory changes. tenant_lifecycle_runs records every lifecycle operation
and the phases it committed. Neither references tenants, so entries
outlive deprovisioned tenants.

Revision ID: a18b5d3e6f79
Revises: 9e6f3b1c4d57
Create Date: 2026-09-28 10:30:58.447762

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a18b5d3e6f79"
down_revision: Union[str, Sequence[str], None] = "9e6f3b1c4d57"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "tenant_audit_log",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.Column("tenant_id", sa.String(length=26), nullable=True),
        sa.Column(
            "detail",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_tenant_audit_log"),
    )
    op.create_index(
        "ix_tenant_audit_log_tenant_id_occurred_at",
        "tenant_audit_log",
        ["tenant_id", "occurred_at"],
    )

    op.create_table(
        "tenant_lifecycle_runs",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("operation", sa.String(length=64), nullable=False),
        sa.Column("target", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "phases",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_tenant_lifecycle_runs"),
    )
    op.create_index(
        "ix_tenant_lifecycle_runs_operation_target",
        "tenant_lifecycle_runs",
        ["operation", "target"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(
        "ix_tenant_lifecycle_runs_operation_target",
        table_name="tenant_lifecycle_runs",
    )
    op.drop_table("tenant_lifecycle_runs")
    op.drop_index(
        "ix_tenant_audit_log_tenant_id_occurred_at", table_name="tenant_audit_log"
    )
    op.drop_table("tenant_audit_log")
