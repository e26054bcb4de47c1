"""Tenant database: integration configurations.

- config_data is jsonb; sensitive keys are stored "encrypted:"-prefixed
- sync_status and connection_status are independent state machines
- unique (store_id, integration_type) among active rows
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "002_integration_configs"
down_revision = None
branch_labels = ("tenant",)
depends_on = None


def upgrade():
    op.create_table(
        "integration_configs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("store_id", sa.String(64), nullable=False),
        sa.Column("integration_type", sa.String(64), nullable=False),
        sa.Column("config_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sync_status", sa.String(16), nullable=False, server_default="idle"),
        sa.Column("sync_error", sa.Text(), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("connection_status", sa.String(16), nullable=False, server_default="untested"),
        sa.Column("connection_error", sa.Text(), nullable=True),
        sa.Column("connection_tested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "sync_status IN ('idle','syncing','success','error')",
            name="ck_integration_configs__sync_status",
        ),
        sa.CheckConstraint(
            "connection_status IN ('untested','success','failed')",
            name="ck_integration_configs__connection_status",
        ),
    )
    op.create_index("ix_integration_configs__store_id", "integration_configs", ["store_id"])
    op.create_index(
        "uq_integration_configs__active_store_type",
        "integration_configs",
        ["store_id", "integration_type"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )


def downgrade():
    op.drop_index("uq_integration_configs__active_store_type", table_name="integration_configs")
    op.drop_index("ix_integration_configs__store_id", table_name="integration_configs")
    op.drop_table("integration_configs")
