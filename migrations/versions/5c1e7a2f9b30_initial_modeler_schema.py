"""initial modeler schema

Revision ID: 5c1e7a2f9b30
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e7a2f9b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create realms, daily realm stats and execution locks."""
    op.create_table(
        "realms",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("abuse_prevention_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("abuse_prevention_limit", sa.Integer(), nullable=False, server_default="10"),
        sa.Column(
            "abuse_prevention_limit_factor", sa.Float(), nullable=False, server_default="1.0"
        ),
        sa.Column("last_codes_claimed_ratio", sa.Float(), nullable=False, server_default="0"),
        sa.Column("codes_claimed_ratio_mean", sa.Float(), nullable=False, server_default="0"),
        sa.Column("codes_claimed_ratio_stddev", sa.Float(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "realm_stats",
        sa.Column("realm_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("codes_issued", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("codes_claimed", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["realm_id"], ["realms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("realm_id", "date"),
    )
    op.create_table(
        "execution_locks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lock_type", sa.String(length=50), nullable=False),
        sa.Column("generation", sa.BigInteger(), nullable=False, server_default="1"),
        sa.Column("not_before", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lock_type"),
    )


def downgrade() -> None:
    """Drop the modeler tables."""
    op.drop_table("execution_locks")
    op.drop_table("realm_stats")
    op.drop_table("realms")
