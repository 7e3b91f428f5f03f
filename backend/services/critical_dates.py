"""Critical dates: dated lease events (commencement, expiration, notice...)."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.orm import Session

from audit import log as audit_log
from db.models import CriticalDate, Lease
from db.query import apply_filters, apply_sort, apply_updates, paginate
from db.session import transaction
from models import CriticalDateCreate, CriticalDateUpdate
from services.errors import InvalidReferenceError, NotFoundError, ValidationError

_LOG = logging.getLogger("uvicorn.error")


def critical_date_to_dict(cd: CriticalDate) -> dict[str, Any]:
    return {
        "critical_date_id": cd.id,
        "lease_id": cd.lease_id,
        "kind": cd.kind,
        "date_value": cd.date_value,
        "notes": cd.notes,
        "created_at": cd.created_at,
        "updated_at": cd.updated_at,
    }


def _require(db: Session, critical_date_id: str) -> CriticalDate:
    cd = db.get(CriticalDate, critical_date_id)
    if cd is None:
        raise NotFoundError("Critical date not found", [{"field": "critical_date_id", "value": critical_date_id}])
    return cd


def create_critical_date(db: Session, data: CriticalDateCreate, actor_id: Optional[str] = None) -> dict[str, Any]:
    if db.get(Lease, data.lease_id) is None:
        raise InvalidReferenceError("Referenced lease does not exist", [{"field": "lease_id", "value": data.lease_id}])
    with transaction(db):
        cd = CriticalDate(
            id=str(uuid.uuid4()),
            lease_id=data.lease_id,
            kind=data.kind.value,
            date_value=data.date_value,
            notes=data.notes,
        )
        db.add(cd)
        db.flush()
        audit_log(
            db, actor_id, "critical_dates.create", "critical_dates", cd.id,
            {"lease_id": cd.lease_id, "kind": cd.kind, "date_value": str(cd.date_value)},
        )
    _LOG.info("CRITICAL_DATE_CREATED id=%s lease_id=%s kind=%s", cd.id, cd.lease_id, cd.kind)
    return critical_date_to_dict(cd)


def get_critical_date(db: Session, critical_date_id: str) -> dict[str, Any]:
    return critical_date_to_dict(_require(db, critical_date_id))


def list_critical_dates(
    db: Session,
    filters: Optional[dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    q = apply_filters(db.query(CriticalDate), "critical_dates", filters or {})
    rows, page = paginate(apply_sort(q, "critical_dates", sort_by, descending), limit, offset)
    return {"data": [critical_date_to_dict(cd) for cd in rows], "pagination": page}


def update_critical_date(
    db: Session, critical_date_id: str, data: CriticalDateUpdate, actor_id: Optional[str] = None
) -> dict[str, Any]:
    values = data.provided()
    if not values:
        raise ValidationError("No fields to update")
    for required in ("kind", "date_value"):
        if required in values and values[required] is None:
            raise ValidationError(f"{required} cannot be null", [{"field": required}])
    with transaction(db):
        cd = _require(db, critical_date_id)
        changed = apply_updates(cd, "critical_dates", values)
        if changed:
            audit_log(db, actor_id, "critical_dates.update", "critical_dates", cd.id, changed)
    return critical_date_to_dict(cd)


def delete_critical_date(db: Session, critical_date_id: str, actor_id: Optional[str] = None) -> None:
    with transaction(db):
        cd = _require(db, critical_date_id)
        db.delete(cd)
        audit_log(db, actor_id, "critical_dates.delete", "critical_dates", critical_date_id, {"lease_id": cd.lease_id})
