"""
Read-only portfolio reports over current lease versions.

Every report is evaluated "as of" a date (default today) with the same metric
functions the record endpoints use, so a report row and the record it came from
never disagree.
"""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session, joinedload

from db.models import (
    Concession,
    CriticalDate,
    Lease,
    LeaseOption,
    LeaseVersion,
    OpexPassThrough,
    Property,
    RentSchedule,
)
from db.query import page_of
from engine.metrics import (
    annual_equivalent,
    monthly_equivalent,
    months_remaining,
    months_to_expiration,
    notice_window_open,
    resolve_expiration_date,
)
from services.errors import ValidationError

UPCOMING_DAYS = 180


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _current(db: Session, property_id: Optional[str] = None, state: Optional[str] = None) -> Iterator[tuple[Lease, LeaseVersion]]:
    q = (
        db.query(Lease, LeaseVersion)
        .join(LeaseVersion, LeaseVersion.lease_id == Lease.id)
        .filter(LeaseVersion.is_current.is_(True))
        .options(joinedload(Lease.tenant), joinedload(Lease.property))
    )
    if property_id:
        q = q.filter(Lease.property_id == property_id)
    if state:
        q = q.join(Property, Lease.property_id == Property.id).filter(Property.state == state)
    yield from q.all()


def _lease_columns(lease: Lease) -> dict[str, Any]:
    return {
        "lease_id": lease.id,
        "master_lease_num": lease.master_lease_num,
        "tenant_name": lease.tenant.legal_name if lease.tenant else None,
        "property_name": lease.property.name if lease.property else None,
    }


def _page(rows: list, as_of: Optional[date], limit: Optional[int], offset: Optional[int]) -> dict[str, Any]:
    data, page = page_of(rows, limit, offset)
    out: dict[str, Any] = {"data": data, "pagination": page}
    if as_of is not None:
        out["as_of"] = as_of
    return out


def expirations(
    db: Session,
    as_of: Optional[date] = None,
    within_months: Optional[float] = None,
    property_id: Optional[str] = None,
    state: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    """Leases expiring on or after as_of (optionally within N months), soonest first."""
    as_of = as_of or date.today()
    if within_months is not None and within_months < 0:
        raise ValidationError("within_months must be non-negative", [{"field": "within_months"}])
    rows = []
    for lease, version in _current(db, property_id, state):
        expiration = resolve_expiration_date(lease.critical_dates, version.effective_interval)
        if expiration is None or expiration < as_of:
            continue
        months = months_to_expiration(expiration, as_of)
        if within_months is not None and months > within_months:
            continue
        row = _lease_columns(lease)
        row.update(
            {
                "state": lease.property.state if lease.property else None,
                "expiration_date": expiration,
                "months_to_expiration": months,
            }
        )
        rows.append(row)
    rows.sort(key=lambda r: (r["expiration_date"], r["master_lease_num"]))
    return _page(rows, as_of, limit, offset)


def rent_roll(
    db: Session,
    as_of: Optional[date] = None,
    property_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    """Rent in effect on as_of for each current lease version."""
    as_of = as_of or date.today()
    rows = []
    for lease, version in _current(db, property_id):
        schedules = db.query(RentSchedule).filter(RentSchedule.lease_version_id == version.id).all()
        for rs in schedules:
            period = rs.period_interval
            if not period.contains(as_of):
                continue
            row = _lease_columns(lease)
            row.update(
                {
                    "rent_schedule_id": rs.id,
                    "period_start": period.start,
                    "period_end": period.end,
                    "basis": rs.basis,
                    "amount": rs.amount,
                    "monthly_equiv": monthly_equivalent(rs.amount, rs.basis),
                    "annualized_equiv": annual_equivalent(rs.amount, rs.basis),
                }
            )
            rows.append(row)
    rows.sort(key=lambda r: (r["property_name"] or "", r["tenant_name"] or "", r["master_lease_num"]))
    return _page(rows, as_of, limit, offset)


def options_status(
    db: Session,
    as_of: Optional[date] = None,
    option_type: Any = None,
    window_open: Optional[bool] = None,
    exercised: Optional[bool] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    as_of = as_of or date.today()
    option_type = _plain(option_type)
    rows = []
    for lease, version in _current(db):
        q = db.query(LeaseOption).filter(LeaseOption.lease_version_id == version.id)
        if option_type:
            q = q.filter(LeaseOption.option_type == option_type)
        if exercised is not None:
            q = q.filter(LeaseOption.exercised.is_(exercised))
        for opt in q.all():
            window = opt.window_interval
            is_open = notice_window_open(window, as_of)
            if window_open is not None and is_open != window_open:
                continue
            row = _lease_columns(lease)
            row.update(
                {
                    "option_id": opt.id,
                    "option_type": opt.option_type,
                    "window_start": window.start,
                    "window_end": window.end,
                    "notice_window_open": is_open,
                    "terms": opt.terms,
                    "exercised": bool(opt.exercised),
                    "exercised_date": opt.exercised_date,
                }
            )
            rows.append(row)
    rows.sort(key=lambda r: (r["window_start"], r["master_lease_num"]))
    return _page(rows, as_of, limit, offset)


def free_rent(
    db: Session,
    as_of: Optional[date] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    """FREE_RENT concessions on current versions that have not yet ended."""
    as_of = as_of or date.today()
    rows = []
    for lease, version in _current(db):
        concessions = (
            db.query(Concession)
            .filter(Concession.lease_version_id == version.id, Concession.kind == "FREE_RENT")
            .all()
        )
        for c in concessions:
            remaining = months_remaining(c.applies_interval, as_of, c.kind)
            if remaining is None:
                continue
            row = _lease_columns(lease)
            row.update(
                {
                    "concession_id": c.id,
                    "free_rent_start": c.applies_interval.start,
                    "free_rent_end": c.applies_interval.end,
                    "value_amount": c.value_amount,
                    "value_basis": c.value_basis,
                    "months_remaining": remaining,
                }
            )
            rows.append(row)
    rows.sort(key=lambda r: (r["free_rent_end"], r["master_lease_num"]))
    return _page(rows, as_of, limit, offset)


def ti_allowances(
    db: Session,
    property_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    """Total TI allowance per lease, from current versions."""
    rows = []
    for lease, version in _current(db, property_id):
        amounts = [
            a
            for (a,) in db.query(Concession.value_amount)
            .filter(Concession.lease_version_id == version.id, Concession.kind == "TI_ALLOWANCE")
            .all()
        ]
        if not amounts:
            continue
        row = _lease_columns(lease)
        row["total_ti_amount"] = sum((Decimal(a) for a in amounts if a is not None), Decimal("0"))
        rows.append(row)
    rows.sort(key=lambda r: (r["property_name"] or "", r["master_lease_num"]))
    return _page(rows, None, limit, offset)


def opex_summary(
    db: Session,
    property_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    """OpEx recovery terms of every current lease version."""
    rows = []
    for lease, version in _current(db, property_id):
        for o in db.query(OpexPassThrough).filter(OpexPassThrough.lease_version_id == version.id).all():
            row = _lease_columns(lease)
            row.update(
                {
                    "opex_id": o.id,
                    "method": o.method,
                    "stop_amount": o.stop_amount,
                    "gross_up_pct": o.gross_up_pct,
                }
            )
            rows.append(row)
    rows.sort(key=lambda r: (r["property_name"] or "", r["master_lease_num"]))
    return _page(rows, None, limit, offset)


def upcoming_critical_dates(
    db: Session,
    as_of: Optional[date] = None,
    days: int = UPCOMING_DAYS,
    kind: Any = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    """Critical dates in [as_of, as_of + days], inclusive on both ends."""
    as_of = as_of or date.today()
    if days < 0:
        raise ValidationError("days must be non-negative", [{"field": "days", "value": days}])
    q = (
        db.query(CriticalDate)
        .options(joinedload(CriticalDate.lease))
        .filter(CriticalDate.date_value >= as_of, CriticalDate.date_value <= as_of + timedelta(days=days))
    )
    if kind:
        q = q.filter(CriticalDate.kind == _plain(kind))
    rows = []
    for cd in q.order_by(CriticalDate.date_value, CriticalDate.id).all():
        row = _lease_columns(cd.lease)
        row.update({"critical_date_id": cd.id, "kind": cd.kind, "date_value": cd.date_value})
        rows.append(row)
    return _page(rows, as_of, limit, offset)


def amendment_history(
    db: Session,
    lease_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    q = db.query(LeaseVersion).options(joinedload(LeaseVersion.lease))
    if lease_id:
        q = q.filter(LeaseVersion.lease_id == lease_id)
    rows = []
    for v in q.order_by(LeaseVersion.lease_id, LeaseVersion.version_num).all():
        interval = v.effective_interval
        rows.append(
            {
                "lease_id": v.lease_id,
                "master_lease_num": v.lease.master_lease_num,
                "lease_version_id": v.id,
                "version_num": v.version_num,
                "effective_start": interval.start,
                "effective_end": interval.end,
                "is_current": bool(v.is_current),
            }
        )
    return _page(rows, None, limit, offset)
