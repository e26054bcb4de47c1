"""Master database: per-store database descriptors.

- store_databases holds one row per registered tenant database
- connection_string_encrypted carries the cipher output of the JSON credentials
- replaced descriptors are deactivated, never deleted
- at most one active descriptor per store (partial unique index)
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = "001_store_databases"
down_revision = None
branch_labels = ("master",)
depends_on = None


def upgrade():
    op.create_table(
        "store_databases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("store_id", sa.String(64), nullable=False),
        sa.Column("database_type", sa.String(32), nullable=False),
        sa.Column("connection_string_encrypted", sa.Text(), nullable=False),
        sa.Column("host", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("connection_status", sa.String(16), nullable=False, server_default="untested"),
        sa.Column("last_connection_test", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "connection_status IN ('untested','success','failed')",
            name="ck_store_databases__connection_status",
        ),
    )
    op.create_index("ix_store_databases__store_id", "store_databases", ["store_id"])
    op.create_index(
        "uq_store_databases__active_store",
        "store_databases",
        ["store_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("ix_store_databases__host", "store_databases", ["host"])


def downgrade():
    op.drop_index("ix_store_databases__host", table_name="store_databases")
    op.drop_index("uq_store_databases__active_store", table_name="store_databases")
    op.drop_index("ix_store_databases__store_id", table_name="store_databases")
    op.drop_table("store_databases")
