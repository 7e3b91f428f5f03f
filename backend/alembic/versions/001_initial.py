"""Initial schema: properties, suites, parties, leases, lease_versions, rent_schedules,
lease_options, concessions, critical_dates, audit_log

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def _interval_columns(name: str, nullable: bool = False) -> list:
    return [
        sa.Column(f"{name}_start", sa.Date(), nullable=nullable),
        sa.Column(f"{name}_end", sa.Date(), nullable=nullable),
        sa.Column(f"{name}_bounds", sa.String(length=2), nullable=nullable, server_default=None if nullable else "[)"),
    ]


def _no_overlap(name: str, table: str, partition: str, interval: str, where: Union[str, None] = None) -> None:
    op.create_exclude_constraint(
        name,
        table,
        (partition, "="),
        (sa.text(f"daterange({interval}_start, {interval}_end, {interval}_bounds)"), "&&"),
        using="gist",
        where=sa.text(where) if where else None,
    )


def upgrade() -> None:
    # gist index support for the "=" part of the exclusion constraints
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "properties",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("total_rsf", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_properties_state", "properties", ["state"])

    op.create_table(
        "suites",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("property_id", sa.String(), nullable=False),
        sa.Column("suite_code", sa.String(length=50), nullable=False),
        sa.Column("rsf", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("property_id", "suite_code", name="uq_suites_property_code"),
    )

    op.create_table(
        "parties",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("legal_name", sa.String(length=500), nullable=False),
        sa.Column("party_type", sa.String(length=50), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "party_type IN ('TENANT', 'LANDLORD', 'SUBLANDLORD', 'GUARANTOR')", name="ck_parties_type"
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "leases",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("property_id", sa.String(), nullable=False),
        sa.Column("landlord_id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("master_lease_num", sa.String(length=100), nullable=False),
        sa.Column("execution_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["landlord_id"], ["parties.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["tenant_id"], ["parties.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("property_id", "master_lease_num", name="uq_leases_property_lease_num"),
    )
    op.create_index("ix_leases_tenant_id", "leases", ["tenant_id"])

    op.create_table(
        "lease_versions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_id", sa.String(), nullable=False),
        sa.Column("version_num", sa.Integer(), nullable=False),
        *_interval_columns("effective"),
        sa.Column("suite_id", sa.String(), nullable=True),
        sa.Column("premises_rsf", sa.Integer(), nullable=True),
        sa.Column("term_months", sa.Integer(), nullable=True),
        sa.Column("base_year", sa.Integer(), nullable=True),
        sa.Column("escalation_method", sa.String(length=50), nullable=True),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["suite_id"], ["suites.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lease_id", "version_num", name="uq_lease_versions_lease_num"),
        sa.CheckConstraint("version_num >= 0", name="ck_lease_versions_num"),
        sa.CheckConstraint("effective_start < effective_end", name="ck_lease_versions_interval"),
        sa.CheckConstraint(
            "escalation_method IN ('CPI', 'FIXED', 'BASE_YEAR', 'NNN', 'OTHER')",
            name="ck_lease_versions_escalation",
        ),
        sa.CheckConstraint("currency_code = 'USD'", name="ck_lease_versions_currency"),
    )
    op.create_index(
        "uq_lease_versions_current",
        "lease_versions",
        ["lease_id"],
        unique=True,
        postgresql_where=sa.text("is_current"),
    )
    _no_overlap("ex_lease_versions_no_overlap", "lease_versions", "lease_id", "effective")

    op.create_table(
        "rent_schedules",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_version_id", sa.String(), nullable=False),
        *_interval_columns("period"),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("basis", sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lease_version_id"], ["lease_versions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("basis IN ('MONTH', 'YEAR')", name="ck_rent_schedules_basis"),
        sa.CheckConstraint("amount > 0", name="ck_rent_schedules_amount"),
        sa.CheckConstraint("period_start < period_end", name="ck_rent_schedules_interval"),
    )
    _no_overlap("ex_rent_schedules_no_overlap", "rent_schedules", "lease_version_id", "period")

    op.create_table(
        "lease_options",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_version_id", sa.String(), nullable=False),
        sa.Column("option_type", sa.String(length=50), nullable=False),
        *_interval_columns("window"),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("exercised", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("exercised_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lease_version_id"], ["lease_versions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "option_type IN ('RENEWAL', 'TERMINATION', 'EXPANSION', 'ROFR', 'OTHER')",
            name="ck_lease_options_type",
        ),
        sa.CheckConstraint("window_start < window_end", name="ck_lease_options_interval"),
    )
    _no_overlap("ex_lease_options_no_overlap", "lease_options", "lease_version_id", "window")

    op.create_table(
        "concessions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_version_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("value_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("value_basis", sa.String(length=20), nullable=True),
        *_interval_columns("applies", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lease_version_id"], ["lease_versions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("kind IN ('TI_ALLOWANCE', 'FREE_RENT', 'OTHER')", name="ck_concessions_kind"),
        sa.CheckConstraint("value_basis IN ('TOTAL', 'PER_SF')", name="ck_concessions_value_basis"),
        sa.CheckConstraint(
            "(applies_start IS NULL AND applies_end IS NULL) OR applies_start < applies_end",
            name="ck_concessions_interval",
        ),
    )
    _no_overlap(
        "ex_concessions_no_overlap", "concessions", "lease_version_id", "applies", where="applies_start IS NOT NULL"
    )

    op.create_table(
        "critical_dates",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lease_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("date_value", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "kind IN ('COMMENCEMENT', 'RENT_START', 'EXPIRATION', 'NOTICE', 'OTHER')",
            name="ck_critical_dates_kind",
        ),
    )
    op.create_index("ix_critical_dates_lease_date", "critical_dates", ["lease_id", "date_value"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=False),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_resource", "audit_log", ["resource_type", "resource_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("critical_dates")
    op.drop_table("concessions")
    op.drop_table("lease_options")
    op.drop_table("rent_schedules")
    op.drop_index("uq_lease_versions_current", table_name="lease_versions")
    op.drop_table("lease_versions")
    op.drop_table("leases")
    op.drop_table("parties")
    op.drop_table("suites")
    op.drop_index("ix_properties_state", table_name="properties")
    op.drop_table("properties")
