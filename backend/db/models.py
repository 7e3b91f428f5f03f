"""SQLAlchemy models for the lease store. Use Alembic for migrations."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, ExcludeConstraint
from sqlalchemy.orm import relationship

from engine.intervals import CANONICAL_BOUNDS, DateInterval

from .session import Base


def _no_overlap(name: str, partition: str, start, end, bounds, where=None) -> ExcludeConstraint:
    """GiST exclusion: no two rows in one partition with overlapping dateranges (PostgreSQL only)."""
    return ExcludeConstraint(
        (partition, "="),
        (func.daterange(start, end, bounds), "&&"),
        name=name,
        using="gist",
        where=where,
    ).ddl_if(dialect="postgresql")


def _interval(start, end, bounds) -> Optional[DateInterval]:
    if start is None or end is None:
        return None
    return DateInterval.from_bounds(start, end, bounds or CANONICAL_BOUNDS)


class Property(Base):
    __tablename__ = "properties"

    id = Column(String, primary_key=True)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    state = Column(String(100), nullable=True)
    postal_code = Column("postal_code", String(20), nullable=True)
    country = Column(String(100), nullable=True, default="USA")
    total_rsf = Column("total_rsf", Integer, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    suites = relationship("Suite", back_populates="property")


class Suite(Base):
    __tablename__ = "suites"
    __table_args__ = (UniqueConstraint("property_id", "suite_code", name="uq_suites_property_code"),)

    id = Column(String, primary_key=True)
    property_id = Column("property_id", String, ForeignKey("properties.id", ondelete="RESTRICT"), nullable=False)
    suite_code = Column("suite_code", String(50), nullable=False)
    rsf = Column(Integer, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property", back_populates="suites")


class Party(Base):
    __tablename__ = "parties"
    __table_args__ = (
        CheckConstraint(
            "party_type IN ('TENANT', 'LANDLORD', 'SUBLANDLORD', 'GUARANTOR')", name="ck_parties_type"
        ),
    )

    id = Column(String, primary_key=True)
    legal_name = Column("legal_name", String(500), nullable=False)
    party_type = Column("party_type", String(50), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Lease(Base):
    __tablename__ = "leases"
    __table_args__ = (
        UniqueConstraint("property_id", "master_lease_num", name="uq_leases_property_lease_num"),
    )

    record_kind = "lease"

    id = Column(String, primary_key=True)
    property_id = Column("property_id", String, ForeignKey("properties.id", ondelete="RESTRICT"), nullable=False)
    landlord_id = Column("landlord_id", String, ForeignKey("parties.id", ondelete="RESTRICT"), nullable=False)
    tenant_id = Column("tenant_id", String, ForeignKey("parties.id", ondelete="RESTRICT"), nullable=False)
    master_lease_num = Column("master_lease_num", String(100), nullable=False)
    execution_date = Column("execution_date", Date, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def current_version(self) -> Optional["LeaseVersion"]:
        for v in self.versions:
            if v.is_current:
                return v
        return None

    # declared after current_version: this name shadows the builtin in the class body
    property = relationship("Property")
    landlord = relationship("Party", foreign_keys=[landlord_id])
    tenant = relationship("Party", foreign_keys=[tenant_id])
    versions = relationship("LeaseVersion", back_populates="lease", order_by="LeaseVersion.version_num")
    critical_dates = relationship("CriticalDate", back_populates="lease", order_by="CriticalDate.date_value")


class LeaseVersion(Base):
    """Snapshot of lease terms over a half-open effective interval. Never edited once superseded."""

    __tablename__ = "lease_versions"

    record_kind = "lease_version"

    id = Column(String, primary_key=True)
    lease_id = Column("lease_id", String, ForeignKey("leases.id", ondelete="RESTRICT"), nullable=False)
    version_num = Column("version_num", Integer, nullable=False, default=0)
    effective_start = Column("effective_start", Date, nullable=False)
    effective_end = Column("effective_end", Date, nullable=False)
    effective_bounds = Column("effective_bounds", String(2), nullable=False, default=CANONICAL_BOUNDS)
    suite_id = Column("suite_id", String, ForeignKey("suites.id", ondelete="RESTRICT"), nullable=True)
    premises_rsf = Column("premises_rsf", Integer, nullable=True)
    term_months = Column("term_months", Integer, nullable=True)
    base_year = Column("base_year", Integer, nullable=True)
    escalation_method = Column("escalation_method", String(50), nullable=True)
    currency_code = Column("currency_code", String(3), nullable=False, default="USD")
    is_current = Column("is_current", Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_by = Column("created_by", String, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("lease_id", "version_num", name="uq_lease_versions_lease_num"),
        CheckConstraint("version_num >= 0", name="ck_lease_versions_num"),
        CheckConstraint("effective_start < effective_end", name="ck_lease_versions_interval"),
        CheckConstraint(
            "escalation_method IN ('CPI', 'FIXED', 'BASE_YEAR', 'NNN', 'OTHER')",
            name="ck_lease_versions_escalation",
        ),
        CheckConstraint("currency_code = 'USD'", name="ck_lease_versions_currency"),
        Index(
            "uq_lease_versions_current",
            "lease_id",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
        _no_overlap("ex_lease_versions_no_overlap", "lease_id", effective_start, effective_end, effective_bounds),
    )

    lease = relationship("Lease", back_populates="versions")
    suite = relationship("Suite")
    rent_schedules = relationship("RentSchedule", back_populates="lease_version")
    options = relationship("LeaseOption", back_populates="lease_version")
    concessions = relationship("Concession", back_populates="lease_version")
    opex_pass_throughs = relationship("OpexPassThrough", back_populates="lease_version")

    @property
    def effective_interval(self) -> DateInterval:
        return _interval(self.effective_start, self.effective_end, self.effective_bounds)


class RentSchedule(Base):
    __tablename__ = "rent_schedules"

    record_kind = "rent_schedule"
    interval_field = "period_interval"

    id = Column(String, primary_key=True)
    lease_version_id = Column(
        "lease_version_id", String, ForeignKey("lease_versions.id", ondelete="RESTRICT"), nullable=False
    )
    period_start = Column("period_start", Date, nullable=False)
    period_end = Column("period_end", Date, nullable=False)
    period_bounds = Column("period_bounds", String(2), nullable=False, default=CANONICAL_BOUNDS)
    amount = Column(Numeric(15, 2), nullable=False)
    basis = Column(String(10), nullable=False)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("basis IN ('MONTH', 'YEAR')", name="ck_rent_schedules_basis"),
        CheckConstraint("amount > 0", name="ck_rent_schedules_amount"),
        CheckConstraint("period_start < period_end", name="ck_rent_schedules_interval"),
        _no_overlap("ex_rent_schedules_no_overlap", "lease_version_id", period_start, period_end, period_bounds),
    )

    lease_version = relationship("LeaseVersion", back_populates="rent_schedules")

    @property
    def period_interval(self) -> DateInterval:
        return _interval(self.period_start, self.period_end, self.period_bounds)

    def set_interval(self, interval: DateInterval) -> None:
        self.period_start, self.period_end, self.period_bounds = interval.start, interval.end, interval.bounds


class LeaseOption(Base):
    __tablename__ = "lease_options"

    record_kind = "option"
    interval_field = "window_interval"

    id = Column(String, primary_key=True)
    lease_version_id = Column(
        "lease_version_id", String, ForeignKey("lease_versions.id", ondelete="RESTRICT"), nullable=False
    )
    option_type = Column("option_type", String(50), nullable=False)
    window_start = Column("window_start", Date, nullable=False)
    window_end = Column("window_end", Date, nullable=False)
    window_bounds = Column("window_bounds", String(2), nullable=False, default=CANONICAL_BOUNDS)
    terms = Column(Text, nullable=True)
    exercised = Column(Boolean, nullable=False, default=False)
    exercised_date = Column("exercised_date", Date, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "option_type IN ('RENEWAL', 'TERMINATION', 'EXPANSION', 'ROFR', 'OTHER')",
            name="ck_lease_options_type",
        ),
        CheckConstraint("window_start < window_end", name="ck_lease_options_interval"),
        _no_overlap("ex_lease_options_no_overlap", "lease_version_id", window_start, window_end, window_bounds),
    )

    lease_version = relationship("LeaseVersion", back_populates="options")

    @property
    def window_interval(self) -> DateInterval:
        return _interval(self.window_start, self.window_end, self.window_bounds)

    def set_interval(self, interval: DateInterval) -> None:
        self.window_start, self.window_end, self.window_bounds = interval.start, interval.end, interval.bounds


class Concession(Base):
    __tablename__ = "concessions"

    record_kind = "concession"
    interval_field = "applies_interval"

    id = Column(String, primary_key=True)
    lease_version_id = Column(
        "lease_version_id", String, ForeignKey("lease_versions.id", ondelete="RESTRICT"), nullable=False
    )
    kind = Column(String(50), nullable=False)
    value_amount = Column("value_amount", Numeric(15, 2), nullable=True)
    value_basis = Column("value_basis", String(20), nullable=True)
    applies_start = Column("applies_start", Date, nullable=True)
    applies_end = Column("applies_end", Date, nullable=True)
    applies_bounds = Column("applies_bounds", String(2), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("kind IN ('TI_ALLOWANCE', 'FREE_RENT', 'OTHER')", name="ck_concessions_kind"),
        CheckConstraint("value_basis IN ('TOTAL', 'PER_SF')", name="ck_concessions_value_basis"),
        CheckConstraint(
            "(applies_start IS NULL AND applies_end IS NULL) OR applies_start < applies_end",
            name="ck_concessions_interval",
        ),
        _no_overlap(
            "ex_concessions_no_overlap",
            "lease_version_id",
            applies_start,
            applies_end,
            applies_bounds,
            # rows without an interval stay out of the constraint
            where=text("applies_start IS NOT NULL"),
        ),
    )

    lease_version = relationship("LeaseVersion", back_populates="concessions")

    @property
    def applies_interval(self) -> Optional[DateInterval]:
        return _interval(self.applies_start, self.applies_end, self.applies_bounds)

    def set_interval(self, interval: Optional[DateInterval]) -> None:
        if interval is None:
            self.applies_start = self.applies_end = self.applies_bounds = None
            return
        self.applies_start, self.applies_end, self.applies_bounds = interval.start, interval.end, interval.bounds


class OpexPassThrough(Base):
    """How operating expenses are recovered from the tenant under one lease version."""

    __tablename__ = "opex_pass_throughs"
    __table_args__ = (
        CheckConstraint(
            "method IN ('BASE_YEAR', 'EXPENSE_STOP', 'NNN', 'OTHER')", name="ck_opex_pass_throughs_method"
        ),
        CheckConstraint("stop_amount >= 0", name="ck_opex_pass_throughs_stop_amount"),
        CheckConstraint("gross_up_pct >= 0 AND gross_up_pct <= 100", name="ck_opex_pass_throughs_gross_up"),
    )

    id = Column(String, primary_key=True)
    lease_version_id = Column(
        "lease_version_id", String, ForeignKey("lease_versions.id", ondelete="RESTRICT"), nullable=False
    )
    method = Column(String(50), nullable=False)
    stop_amount = Column("stop_amount", Numeric(15, 2), nullable=True)
    gross_up_pct = Column("gross_up_pct", Numeric(5, 2), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    lease_version = relationship("LeaseVersion", back_populates="opex_pass_throughs")


class CriticalDate(Base):
    __tablename__ = "critical_dates"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('COMMENCEMENT', 'RENT_START', 'EXPIRATION', 'NOTICE', 'OTHER')",
            name="ck_critical_dates_kind",
        ),
    )

    id = Column(String, primary_key=True)
    lease_id = Column("lease_id", String, ForeignKey("leases.id", ondelete="RESTRICT"), nullable=False)
    kind = Column(String(50), nullable=False)
    date_value = Column("date_value", Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
    updated_at = Column("updated_at", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    lease = relationship("Lease", back_populates="critical_dates")


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(String, primary_key=True)
    actor_id = Column("actor_id", String, nullable=False)
    action = Column(String, nullable=False)
    resource_type = Column("resource_type", String, nullable=False)
    resource_id = Column("resource_id", String, nullable=True)
    details = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    created_at = Column("created_at", DateTime, default=datetime.utcnow)
