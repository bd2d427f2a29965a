"""Create records table

Revision ID: 5c2e9a7d41b0
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e9a7d41b0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the JSON record store used by SQL persistence."""
    op.create_table(
        "records",
        sa.Column("scope", sa.String(32), primary_key=True),
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_records_scope", "records", ["scope"])


def downgrade() -> None:
    op.drop_index("ix_records_scope", table_name="records")
    op.drop_table("records")
