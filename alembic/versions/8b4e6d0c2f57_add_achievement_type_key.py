"""Add achievements.type_key with a per-user unique constraint

Revision ID: 8b4e6d0c2f57
Revises: 3f1c2a7d9e10
Create Date: 2026-10-06 16:40:03.552917

Existing rows keep ``type_key = NULL`` so the constraint can be created
even when legacy duplicates exist.  Run
``python -m triviabox.jobs reconcile --apply`` afterwards to merge
duplicates and backfill the key.
"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '8b4e6d0c2f57'
down_revision: str | Sequence[str] | None = '3f1c2a7d9e10'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    with op.batch_alter_table("achievements") as batch:
        batch.add_column(sa.Column("type_key", sa.String(50), nullable=True))
        batch.create_unique_constraint(
            "uq_achievements_user_type_key", ["user_id", "type_key"],
        )


def downgrade() -> None:
    with op.batch_alter_table("achievements") as batch:
        batch.drop_constraint("uq_achievements_user_type_key", type_="unique")
        batch.drop_column("type_key")
