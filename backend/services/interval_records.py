"""
Rent schedules, options and concessions: dated records attached to a lease version.

Within one lease version, records of the same kind never overlap. The check runs
here first; the PostgreSQL exclusion constraint is the backstop when two writers
race, and its violation is reported with the conflicting row re-read.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from audit import log as audit_log
from db.models import Concession, LeaseOption, LeaseVersion, RentSchedule
from db.query import apply_filters, apply_sort, apply_updates, paginate
from db.session import transaction
from engine.metrics import compute_derived_metrics
from services.errors import (
    InvalidReferenceError,
    NotFoundError,
    OptionAlreadyExercisedError,
    OverlapConflictError,
    ValidationError,
)
from services.overlap import check_no_overlap, describe_overlap

_LOG = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class RecordKind:
    name: str
    model: type
    resource: str
    id_key: str
    interval_field: str
    interval_optional: bool = False

    def interval_of(self, row: Any):
        return getattr(row, self.interval_field)


RENT_SCHEDULES = RecordKind("rent_schedules", RentSchedule, "rent schedule", "rent_schedule_id", "period_interval")
OPTIONS = RecordKind("options", LeaseOption, "option", "option_id", "window_interval")
CONCESSIONS = RecordKind(
    "concessions", Concession, "concession", "concession_id", "applies_interval", interval_optional=True
)

KINDS: dict[str, RecordKind] = {k.name: k for k in (RENT_SCHEDULES, OPTIONS, CONCESSIONS)}


def record_kind(name: str) -> RecordKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown interval record kind {name!r}") from None


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _interval_dict(interval) -> Optional[dict[str, Any]]:
    return interval.to_dict() if interval is not None else None


def record_to_dict(kind: RecordKind, row: Any, now: date) -> dict[str, Any]:
    out: dict[str, Any] = {kind.id_key: row.id, "lease_version_id": row.lease_version_id}
    if kind is RENT_SCHEDULES:
        out.update(
            {
                "period_interval": _interval_dict(row.period_interval),
                "amount": row.amount,
                "basis": row.basis,
            }
        )
    elif kind is OPTIONS:
        out.update(
            {
                "option_type": row.option_type,
                "window_interval": _interval_dict(row.window_interval),
                "terms": row.terms,
                "exercised": bool(row.exercised),
                "exercised_date": row.exercised_date,
            }
        )
    else:
        out.update(
            {
                "kind": row.kind,
                "value_amount": row.value_amount,
                "value_basis": row.value_basis,
                "applies_interval": _interval_dict(row.applies_interval),
                "notes": row.notes,
            }
        )
    out["created_at"] = row.created_at
    out["updated_at"] = row.updated_at
    out.update(compute_derived_metrics(row, now))
    return out


def _require(db: Session, kind: RecordKind, record_id: str, lock: bool = False) -> Any:
    q = db.query(kind.model).filter(kind.model.id == record_id)
    if lock:
        q = q.with_for_update()
    row = q.first()
    if row is None:
        raise NotFoundError(f"{kind.resource.capitalize()} not found", [{"field": kind.id_key, "value": record_id}])
    return row


def _check_overlap(db: Session, kind: RecordKind, version_id: str, interval, exclude_id: Optional[str] = None) -> None:
    check_no_overlap(
        db,
        kind.model,
        "lease_version_id",
        version_id,
        interval,
        interval_of=kind.interval_of,
        resource=kind.resource,
        field=kind.interval_field,
        exclude_id=exclude_id,
    )


def _reraise_named(db: Session, kind: RecordKind, error: OverlapConflictError, version_id, interval, exclude_id=None):
    """Re-raise a storage-level overlap with the conflicting row named when it can be found."""
    if error.conflicting_id is not None or version_id is None:
        raise error
    named = describe_overlap(
        db,
        kind.model,
        "lease_version_id",
        version_id,
        interval,
        interval_of=kind.interval_of,
        resource=kind.resource,
        field=kind.interval_field,
        exclude_id=exclude_id,
    )
    if named is None:
        raise error
    raise named from error


def insert_interval_record(
    db: Session, kind: RecordKind, lease_version_id: str, values: dict[str, Any], actor_id: Optional[str]
) -> Any:
    """Validate and insert inside the caller's transaction."""
    interval = values.pop(kind.interval_field, None)
    if interval is None and not kind.interval_optional:
        raise ValidationError(f"{kind.interval_field} is required", [{"field": kind.interval_field}])
    if db.get(LeaseVersion, lease_version_id) is None:
        raise InvalidReferenceError(
            "Referenced lease version does not exist",
            [{"field": "lease_version_id", "value": lease_version_id}],
        )
    _check_overlap(db, kind, lease_version_id, interval)
    row = kind.model(
        id=str(uuid.uuid4()),
        lease_version_id=lease_version_id,
        **{k: _plain(v) for k, v in values.items()},
    )
    row.set_interval(interval)
    db.add(row)
    db.flush()
    audit_log(
        db,
        actor_id,
        f"{kind.name}.create",
        kind.name,
        row.id,
        {"lease_version_id": lease_version_id, kind.interval_field: str(interval) if interval else None},
    )
    return row


def create_interval_record(
    db: Session,
    kind_name: str,
    lease_version_id: str,
    payload: Any,
    actor_id: Optional[str] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    """Create a rent schedule, option or concession on a lease version."""
    kind = record_kind(kind_name)
    values = payload.model_dump(exclude={"lease_version_id"})
    # model_dump flattens DateInterval into a dict; keep the parsed object
    interval = values[kind.interval_field] = getattr(payload, kind.interval_field)
    try:
        with transaction(db):
            row = insert_interval_record(db, kind, lease_version_id, values, actor_id)
    except OverlapConflictError as e:
        _reraise_named(db, kind, e, lease_version_id, interval)
    _LOG.info("RECORD_CREATED kind=%s id=%s lease_version_id=%s", kind.name, row.id, lease_version_id)
    return record_to_dict(kind, row, now or date.today())


def get_interval_record(db: Session, kind_name: str, record_id: str, now: Optional[date] = None) -> dict[str, Any]:
    kind = record_kind(kind_name)
    return record_to_dict(kind, _require(db, kind, record_id), now or date.today())


def list_interval_records(
    db: Session,
    kind_name: str,
    filters: Optional[dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    kind = record_kind(kind_name)
    q = apply_filters(db.query(kind.model), kind.name, filters or {})
    q = apply_sort(q, kind.name, sort_by, descending)
    rows, page = paginate(q, limit, offset)
    now = now or date.today()
    return {"data": [record_to_dict(kind, r, now) for r in rows], "pagination": page}


def update_interval_record(
    db: Session,
    kind_name: str,
    record_id: str,
    payload: Any,
    actor_id: Optional[str] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    """Partial update; a new interval is checked against siblings, excluding the record itself."""
    kind = record_kind(kind_name)
    values = payload.provided()
    if not values:
        raise ValidationError("No fields to update")
    has_interval = kind.interval_field in values
    values.pop(kind.interval_field, None)
    interval = getattr(payload, kind.interval_field) if has_interval else None
    if has_interval and interval is None and not kind.interval_optional:
        raise ValidationError(f"{kind.interval_field} cannot be null", [{"field": kind.interval_field}])
    version_id = None
    try:
        with transaction(db):
            row = _require(db, kind, record_id, lock=True)
            version_id = row.lease_version_id
            changed = apply_updates(row, kind.name, values)
            if has_interval:
                _check_overlap(db, kind, version_id, interval, exclude_id=row.id)
                old = kind.interval_of(row)
                row.set_interval(interval)
                changed[kind.interval_field] = {
                    "old": str(old) if old else None,
                    "new": str(interval) if interval else None,
                }
            db.flush()
            audit_log(db, actor_id, f"{kind.name}.update", kind.name, row.id, changed)
    except OverlapConflictError as e:
        _reraise_named(db, kind, e, version_id, interval, exclude_id=record_id)
    return record_to_dict(kind, row, now or date.today())


def delete_interval_record(db: Session, kind_name: str, record_id: str, actor_id: Optional[str] = None) -> None:
    kind = record_kind(kind_name)
    with transaction(db):
        row = _require(db, kind, record_id, lock=True)
        db.delete(row)
        audit_log(db, actor_id, f"{kind.name}.delete", kind.name, record_id, {"lease_version_id": row.lease_version_id})
    _LOG.info("RECORD_DELETED kind=%s id=%s", kind.name, record_id)


def exercise_option(
    db: Session,
    option_id: str,
    exercised_date: Optional[date] = None,
    actor_id: Optional[str] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    """Mark an option exercised; the date defaults to today. Exercising twice is a conflict."""
    now = now or date.today()
    with transaction(db):
        row = _require(db, OPTIONS, option_id, lock=True)
        if row.exercised:
            raise OptionAlreadyExercisedError(
                "Option has already been exercised",
                [{"option_id": option_id, "exercised_date": str(row.exercised_date) if row.exercised_date else None}],
            )
        row.exercised = True
        row.exercised_date = exercised_date or now
        audit_log(db, actor_id, "options.exercise", "options", option_id, {"exercised_date": str(row.exercised_date)})
    _LOG.info("OPTION_EXERCISED option_id=%s", option_id)
    return record_to_dict(OPTIONS, row, now)
