"""
Lease master records and the append-only version history.

A lease owns its versions; exactly one version is current once any exists.
Amendments lock the lease row, check the candidate's effective interval against
every existing version, then demote all versions and insert the new one as
current in the same transaction. PostgreSQL backs this with an exclusion
constraint on (lease_id, effective range) and a partial unique index on the
current flag, so a concurrent writer that slips past the pre-check still fails
and is retried here.
"""
from __future__ import annotations

import logging
import os
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from audit import log as audit_log
from db.models import CriticalDate, Lease, LeaseVersion, Party, Property, Suite
from db.query import apply_filters, apply_sort, apply_updates, paginate
from db.session import transaction
from engine.metrics import compute_derived_metrics
from models import LeaseCreate, LeaseUpdate, LeaseVersionIn
from services.errors import (
    ConcurrentAmendmentError,
    DuplicateLeaseError,
    InvalidReferenceError,
    LeaseInUseError,
    NotFoundError,
    OverlapConflictError,
    ValidationError,
)
from services.overlap import check_no_overlap, describe_overlap

_LOG = logging.getLogger("uvicorn.error")

AMENDMENT_MAX_ATTEMPTS = max(1, int(os.environ.get("AMENDMENT_MAX_ATTEMPTS", "3")))

LANDLORD_TYPES = ("LANDLORD", "SUBLANDLORD")
TENANT_TYPES = ("TENANT",)


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _version_interval(v: LeaseVersion):
    return v.effective_interval


# --- Serialization ---

def version_to_dict(v: LeaseVersion, now: date) -> dict[str, Any]:
    out = {
        "lease_version_id": v.id,
        "lease_id": v.lease_id,
        "version_num": v.version_num,
        "effective_interval": v.effective_interval.to_dict(),
        "suite_id": v.suite_id,
        "premises_rsf": v.premises_rsf,
        "term_months": v.term_months,
        "base_year": v.base_year,
        "escalation_method": v.escalation_method,
        "currency_code": v.currency_code,
        "is_current": bool(v.is_current),
        "notes": v.notes,
        "created_by": v.created_by,
        "created_at": v.created_at,
    }
    out.update(compute_derived_metrics(v, now))
    return out


def lease_to_dict(lease: Lease, now: date, include_current: bool = True) -> dict[str, Any]:
    out = {
        "lease_id": lease.id,
        "property_id": lease.property_id,
        "landlord_id": lease.landlord_id,
        "tenant_id": lease.tenant_id,
        "master_lease_num": lease.master_lease_num,
        "execution_date": lease.execution_date,
        "created_at": lease.created_at,
        "updated_at": lease.updated_at,
    }
    out.update(compute_derived_metrics(lease, now))
    if include_current:
        current = lease.current_version
        out["current_version"] = version_to_dict(current, now) if current is not None else None
    return out


# --- Reference checks (read-only; run before anything is written) ---

def require_lease(db: Session, lease_id: str, lock: bool = False) -> Lease:
    q = db.query(Lease).filter(Lease.id == lease_id)
    if lock:
        q = q.with_for_update()
    lease = q.first()
    if lease is None:
        raise NotFoundError("Lease not found", [{"field": "lease_id", "value": lease_id}])
    return lease


def require_version(db: Session, version_id: str) -> LeaseVersion:
    v = db.get(LeaseVersion, version_id)
    if v is None:
        raise NotFoundError("Lease version not found", [{"field": "lease_version_id", "value": version_id}])
    return v


def _check_property(db: Session, property_id: str) -> None:
    if db.get(Property, property_id) is None:
        raise InvalidReferenceError(
            "Referenced property does not exist", [{"field": "property_id", "value": property_id}]
        )


def _check_party(db: Session, party_id: str, field: str, allowed: tuple[str, ...]) -> None:
    party = db.get(Party, party_id)
    if party is None:
        raise InvalidReferenceError("Referenced party does not exist", [{"field": field, "value": party_id}])
    if party.party_type not in allowed:
        raise ValidationError(
            f"{field} must reference a {' or '.join(allowed)} party",
            [{"field": field, "value": party_id, "party_type": party.party_type}],
        )


def _check_suite(db: Session, suite_id: Optional[str]) -> None:
    if suite_id and db.get(Suite, suite_id) is None:
        raise InvalidReferenceError("Referenced suite does not exist", [{"field": "suite_id", "value": suite_id}])


def _check_lease_number(db: Session, property_id: str, master_lease_num: str, exclude_id: Optional[str] = None) -> None:
    q = db.query(Lease.id).filter(Lease.property_id == property_id, Lease.master_lease_num == master_lease_num)
    if exclude_id is not None:
        q = q.filter(Lease.id != exclude_id)
    if q.first() is not None:
        raise DuplicateLeaseError(
            "Lease with this master lease number already exists for this property",
            [{"field": "master_lease_num", "value": master_lease_num}],
        )


# --- Version store ---

def append_version(db: Session, lease: Lease, candidate: LeaseVersionIn, actor_id: Optional[str]) -> LeaseVersion:
    """
    Overlap check, next number, demote, insert. Runs inside the caller's
    transaction; the caller holds the lease row lock and commits.
    """
    interval = candidate.effective_interval
    _check_suite(db, candidate.suite_id)
    check_no_overlap(
        db,
        LeaseVersion,
        "lease_id",
        lease.id,
        interval,
        interval_of=_version_interval,
        resource="lease version",
        field="effective_interval",
    )
    nums = [n for (n,) in db.query(LeaseVersion.version_num).filter(LeaseVersion.lease_id == lease.id).all()]
    next_num = max(nums) + 1 if nums else 0

    db.query(LeaseVersion).filter(LeaseVersion.lease_id == lease.id, LeaseVersion.is_current.is_(True)).update(
        {"is_current": False}, synchronize_session="fetch"
    )
    version = LeaseVersion(
        id=str(uuid.uuid4()),
        lease=lease,
        version_num=next_num,
        effective_start=interval.start,
        effective_end=interval.end,
        effective_bounds=interval.bounds,
        suite_id=candidate.suite_id,
        premises_rsf=candidate.premises_rsf,
        term_months=candidate.term_months,
        base_year=candidate.base_year,
        escalation_method=_plain(candidate.escalation_method),
        currency_code=_plain(candidate.currency_code),
        is_current=True,
        notes=candidate.notes,
        created_by=actor_id,
    )
    db.add(version)
    db.flush()
    audit_log(
        db,
        actor_id,
        "lease_version.create",
        "lease_version",
        version.id,
        {"lease_id": lease.id, "version_num": next_num, "effective_interval": interval.to_literal()},
    )
    _LOG.info("VERSION_APPENDED lease_id=%s version_num=%s interval=%s", lease.id, next_num, interval)
    return version


def create_amendment(
    db: Session,
    lease_id: str,
    candidate: LeaseVersionIn,
    actor_id: Optional[str] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    """
    Add version N+1 and make it current. Concurrent-amendment conflicts are
    retried from the start up to AMENDMENT_MAX_ATTEMPTS times; overlap conflicts
    are returned at once.
    """
    now = now or date.today()
    for attempt in range(1, AMENDMENT_MAX_ATTEMPTS + 1):
        try:
            with transaction(db):
                lease = require_lease(db, lease_id, lock=True)
                version = append_version(db, lease, candidate, actor_id)
            break
        except ConcurrentAmendmentError:
            if attempt >= AMENDMENT_MAX_ATTEMPTS:
                _LOG.warning("AMENDMENT_RETRY_EXHAUSTED lease_id=%s attempts=%s", lease_id, attempt)
                raise
            _LOG.info("AMENDMENT_RETRY lease_id=%s attempt=%s", lease_id, attempt)
        except OverlapConflictError as e:
            if e.conflicting_id is not None:
                raise
            named = describe_overlap(
                db,
                LeaseVersion,
                "lease_id",
                lease_id,
                candidate.effective_interval,
                interval_of=_version_interval,
                resource="lease version",
                field="effective_interval",
            )
            if named is None:
                raise
            raise named from e
    _LOG.info("AMENDMENT_CREATED lease_id=%s version_num=%s", lease_id, version.version_num)
    return version_to_dict(version, now)


def get_current_version(db: Session, lease_id: str, now: Optional[date] = None) -> Optional[dict[str, Any]]:
    require_lease(db, lease_id)
    v = (
        db.query(LeaseVersion)
        .filter(LeaseVersion.lease_id == lease_id, LeaseVersion.is_current.is_(True))
        .first()
    )
    return version_to_dict(v, now or date.today()) if v is not None else None


def list_version_history(
    db: Session,
    lease_id: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    """Versions by version_num ascending."""
    require_lease(db, lease_id)
    q = apply_sort(db.query(LeaseVersion).filter(LeaseVersion.lease_id == lease_id), "lease_versions")
    rows, page = paginate(q, limit, offset)
    now = now or date.today()
    return {"data": [version_to_dict(v, now) for v in rows], "pagination": page}


def get_version(db: Session, version_id: str, now: Optional[date] = None) -> dict[str, Any]:
    return version_to_dict(require_version(db, version_id), now or date.today())


# --- Lease master records ---

def insert_lease(db: Session, data: LeaseCreate, actor_id: Optional[str]) -> Lease:
    """Create the lease (and version 0 when given) inside the caller's transaction."""
    _check_property(db, data.property_id)
    _check_party(db, data.landlord_id, "landlord_id", LANDLORD_TYPES)
    _check_party(db, data.tenant_id, "tenant_id", TENANT_TYPES)
    _check_lease_number(db, data.property_id, data.master_lease_num)
    lease = Lease(
        id=str(uuid.uuid4()),
        property_id=data.property_id,
        landlord_id=data.landlord_id,
        tenant_id=data.tenant_id,
        master_lease_num=data.master_lease_num,
        execution_date=data.execution_date,
    )
    db.add(lease)
    db.flush()
    audit_log(
        db,
        actor_id,
        "lease.create",
        "lease",
        lease.id,
        {"property_id": lease.property_id, "master_lease_num": lease.master_lease_num},
    )
    if data.initial_version is not None:
        append_version(db, lease, data.initial_version, actor_id)
    return lease


def modify_lease(db: Session, lease: Lease, values: dict[str, Any], actor_id: Optional[str]) -> dict[str, Any]:
    """Apply master-record edits inside the caller's transaction. Versions are untouched."""
    for required in ("property_id", "landlord_id", "tenant_id", "master_lease_num"):
        if required in values and values[required] is None:
            raise ValidationError(f"{required} cannot be null", [{"field": required}])
    if "property_id" in values:
        _check_property(db, values["property_id"])
    if "landlord_id" in values:
        _check_party(db, values["landlord_id"], "landlord_id", LANDLORD_TYPES)
    if "tenant_id" in values:
        _check_party(db, values["tenant_id"], "tenant_id", TENANT_TYPES)
    if "property_id" in values or "master_lease_num" in values:
        _check_lease_number(
            db,
            values.get("property_id", lease.property_id),
            values.get("master_lease_num", lease.master_lease_num),
            exclude_id=lease.id,
        )
    changed = apply_updates(lease, "leases", values)
    if changed:
        db.flush()
        audit_log(db, actor_id, "lease.update", "lease", lease.id, changed)
    return changed


def create_lease(
    db: Session, data: LeaseCreate, actor_id: Optional[str] = None, now: Optional[date] = None
) -> dict[str, Any]:
    with transaction(db):
        lease = insert_lease(db, data, actor_id)
    _LOG.info("LEASE_CREATED lease_id=%s master_lease_num=%s", lease.id, lease.master_lease_num)
    return lease_to_dict(lease, now or date.today())


def get_lease(db: Session, lease_id: str, now: Optional[date] = None) -> dict[str, Any]:
    return lease_to_dict(require_lease(db, lease_id), now or date.today())


def list_leases(
    db: Session,
    filters: Optional[dict[str, Any]] = None,
    state: Optional[str] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    q = apply_filters(db.query(Lease), "leases", filters or {})
    if state:
        q = q.join(Property, Lease.property_id == Property.id).filter(Property.state == state)
    q = apply_sort(q, "leases", sort_by, descending)
    rows, page = paginate(q, limit, offset)
    now = now or date.today()
    return {"data": [lease_to_dict(lease, now) for lease in rows], "pagination": page}


def update_lease(
    db: Session, lease_id: str, data: LeaseUpdate, actor_id: Optional[str] = None, now: Optional[date] = None
) -> dict[str, Any]:
    values = data.provided()
    if not values:
        raise ValidationError("No fields to update")
    with transaction(db):
        lease = require_lease(db, lease_id, lock=True)
        modify_lease(db, lease, values, actor_id)
    return lease_to_dict(lease, now or date.today())


def delete_lease(db: Session, lease_id: str, actor_id: Optional[str] = None) -> None:
    """Restricted: a lease with versions or critical dates cannot be deleted."""
    with transaction(db):
        lease = require_lease(db, lease_id, lock=True)
        versions = db.query(LeaseVersion).filter(LeaseVersion.lease_id == lease_id).count()
        dates = db.query(CriticalDate).filter(CriticalDate.lease_id == lease_id).count()
        if versions or dates:
            raise LeaseInUseError(
                "Lease has versions or critical dates and cannot be deleted",
                [{"versions": versions, "critical_dates": dates}],
            )
        db.delete(lease)
        audit_log(db, actor_id, "lease.delete", "lease", lease_id, {"master_lease_num": lease.master_lease_num})
    _LOG.info("LEASE_DELETED lease_id=%s", lease_id)
