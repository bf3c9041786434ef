"""Datasets and append-only dataset items.

Revision ID: 001_datasets
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_datasets"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "datasets",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=True, unique=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Items are only ever inserted; the bigserial id preserves insertion order
    op.create_table(
        "dataset_items",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), primary_key=True),
        sa.Column("dataset_id", sa.UUID(), sa.ForeignKey("datasets.id"), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_dataset_items_dataset_id", "dataset_items", ["dataset_id", "id"])


def downgrade() -> None:
    op.drop_index("ix_dataset_items_dataset_id", table_name="dataset_items")
    op.drop_table("dataset_items")
    op.drop_table("datasets")
