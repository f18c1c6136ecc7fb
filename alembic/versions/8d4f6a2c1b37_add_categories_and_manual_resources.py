"""Add manual resources, categories, estimated duration and system settings.

Revision ID: 8d4f6a2c1b37
Revises: 5b2e8d4a61f0
Create Date: 2026-04-07 15:45:00.000000
"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8d4f6a2c1b37"
down_revision: str | None = "5b2e8d4a61f0"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

INITIATIVE_COLUMNS = ("manual_resources", "categories", "estimated_duration")


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())
    existing_columns = {column["name"] for column in inspector.get_columns("initiatives")}

    if "manual_resources" not in existing_columns:
        op.add_column("initiatives", sa.Column("manual_resources", sa.Text(), nullable=True))
    if "categories" not in existing_columns:
        op.add_column("initiatives", sa.Column("categories", sa.Text(), nullable=True))
    if "estimated_duration" not in existing_columns:
        op.add_column("initiatives", sa.Column("estimated_duration", sa.Integer(), nullable=True))

    if "categories" not in existing_tables:
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=120), nullable=False, unique=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("last_used_at", sa.DateTime(), nullable=True),
            sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        )

    if "system_settings" not in existing_tables:
        op.create_table(
            "system_settings",
            sa.Column("key", sa.String(length=80), primary_key=True),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())
    existing_columns = {column["name"] for column in inspector.get_columns("initiatives")}

    for table_name in ("system_settings", "categories"):
        if table_name in existing_tables:
            op.drop_table(table_name)

    with op.batch_alter_table("initiatives") as batch_op:
        for column_name in INITIATIVE_COLUMNS:
            if column_name in existing_columns:
                batch_op.drop_column(column_name)
