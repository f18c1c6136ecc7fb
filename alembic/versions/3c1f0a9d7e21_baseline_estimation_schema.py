"""Baseline estimation schema.

Creates the tables that predate journals, resource costs and categories. Each
table is only created when missing so hand-built data files can be adopted.

Revision ID: 3c1f0a9d7e21
Revises:
Create Date: 2026-03-02 09:00:00.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d7e21"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

BASELINE_TABLES = (
    "dropdown_options",
    "shirt_size_audit",
    "shirt_sizes",
    "initiatives",
    "estimation_factors",
    "resource_types",
)


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "resource_types" not in existing_tables:
        op.create_table(
            "resource_types",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
        )

    if "estimation_factors" not in existing_tables:
        op.create_table(
            "estimation_factors",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=160), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("hours_per_resource_type", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )

    if "initiatives" not in existing_tables:
        op.create_table(
            "initiatives",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("custom_id", sa.String(length=80), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=50), nullable=True),
            sa.Column("priority_num", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=True),
            sa.Column("estimation_type", sa.String(length=50), nullable=True),
            sa.Column("classification", sa.String(length=50), nullable=True),
            sa.Column("scope", sa.Text(), nullable=True),
            sa.Column("out_of_scope", sa.Text(), nullable=True),
            sa.Column("selected_factors", sa.Text(), nullable=True),
            sa.Column("computed_hours", sa.Float(), nullable=True),
            sa.Column("shirt_size", sa.String(length=10), nullable=True),
            sa.Column("journal_entries", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )

    if "shirt_sizes" not in existing_tables:
        op.create_table(
            "shirt_sizes",
            sa.Column("size", sa.String(length=10), primary_key=True),
            sa.Column("threshold_hours", sa.Float(), nullable=False),
        )

    if "shirt_size_audit" not in existing_tables:
        op.create_table(
            "shirt_size_audit",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("action", sa.String(length=30), nullable=False),
            sa.Column("old_data", sa.Text(), nullable=True),
            sa.Column("new_data", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(), nullable=True),
        )

    if "dropdown_options" not in existing_tables:
        op.create_table(
            "dropdown_options",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("category", sa.String(length=30), nullable=False),
            sa.Column("value", sa.String(length=120), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.UniqueConstraint("category", "value"),
        )


def downgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())
    for table_name in BASELINE_TABLES:
        if table_name in existing_tables:
            op.drop_table(table_name)
