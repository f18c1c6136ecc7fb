"""Add resource-type properties, catalog journals and non-labour values.

Revision ID: 5b2e8d4a61f0
Revises: 3c1f0a9d7e21
Create Date: 2026-03-16 11:30:00.000000
"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5b2e8d4a61f0"
down_revision: str | None = "3c1f0a9d7e21"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _new_columns() -> dict[str, list[sa.Column]]:
    # Columns are built per call; a Column object can only be attached once.
    return {
        "resource_types": [
            sa.Column("resource_category", sa.String(length=20), nullable=True, server_default="Labour"),
            sa.Column("resource_cost", sa.Float(), nullable=True),
            sa.Column("journal_entries", sa.Text(), nullable=True),
        ],
        "estimation_factors": [
            sa.Column("value_per_resource_type", sa.Text(), nullable=True),
            sa.Column("journal_entries", sa.Text(), nullable=True),
        ],
    }


def _columns_for(table_name: str) -> set[str]:
    """Return the current set of column names for a table."""
    inspector = sa.inspect(op.get_bind())
    return {column["name"] for column in inspector.get_columns(table_name)}


def upgrade() -> None:
    """Add cost, category and journal columns used by audit trails and cost totals."""
    for table_name, columns in _new_columns().items():
        existing_columns = _columns_for(table_name)
        for column in columns:
            if column.name not in existing_columns:
                op.add_column(table_name, column)


def downgrade() -> None:
    for table_name, columns in _new_columns().items():
        existing_columns = _columns_for(table_name)
        with op.batch_alter_table(table_name) as batch_op:
            for column in columns:
                if column.name in existing_columns:
                    batch_op.drop_column(column.name)
