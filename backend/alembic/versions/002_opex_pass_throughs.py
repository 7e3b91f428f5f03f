"""OpEx pass-through terms per lease version

Revision ID: 002
Revises: 001
Create Date: 2025-01-15 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "opex_pass_throughs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_version_id", sa.String(), nullable=False),
        sa.Column("method", sa.String(length=50), nullable=False),
        sa.Column("stop_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("gross_up_pct", sa.Numeric(5, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["lease_version_id"], ["lease_versions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "method IN ('BASE_YEAR', 'EXPENSE_STOP', 'NNN', 'OTHER')", name="ck_opex_pass_throughs_method"
        ),
        sa.CheckConstraint("stop_amount >= 0", name="ck_opex_pass_throughs_stop_amount"),
        sa.CheckConstraint("gross_up_pct >= 0 AND gross_up_pct <= 100", name="ck_opex_pass_throughs_gross_up"),
    )
    op.create_index("ix_opex_pass_throughs_version", "opex_pass_throughs", ["lease_version_id"])


def downgrade() -> None:
    op.drop_index("ix_opex_pass_throughs_version", table_name="opex_pass_throughs")
    op.drop_table("opex_pass_throughs")
