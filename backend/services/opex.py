"""OpEx pass-throughs: how a lease version recovers operating expenses (base year, stop, NNN)."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.orm import Session

from audit import log as audit_log
from db.models import LeaseVersion, OpexPassThrough
from db.query import apply_filters, apply_sort, apply_updates, paginate
from db.session import transaction
from models import OpexPassThroughCreate, OpexPassThroughUpdate
from services.errors import InvalidReferenceError, NotFoundError, ValidationError

_LOG = logging.getLogger("uvicorn.error")


def opex_to_dict(o: OpexPassThrough) -> dict[str, Any]:
    return {
        "opex_id": o.id,
        "lease_version_id": o.lease_version_id,
        "method": o.method,
        "stop_amount": o.stop_amount,
        "gross_up_pct": o.gross_up_pct,
        "notes": o.notes,
        "created_at": o.created_at,
        "updated_at": o.updated_at,
    }


def _require(db: Session, opex_id: str) -> OpexPassThrough:
    o = db.get(OpexPassThrough, opex_id)
    if o is None:
        raise NotFoundError("OpEx pass-through not found", [{"field": "opex_id", "value": opex_id}])
    return o


def create_opex(db: Session, data: OpexPassThroughCreate, actor_id: Optional[str] = None) -> dict[str, Any]:
    if db.get(LeaseVersion, data.lease_version_id) is None:
        raise InvalidReferenceError(
            "Referenced lease version does not exist",
            [{"field": "lease_version_id", "value": data.lease_version_id}],
        )
    with transaction(db):
        o = OpexPassThrough(
            id=str(uuid.uuid4()),
            lease_version_id=data.lease_version_id,
            method=data.method.value,
            stop_amount=data.stop_amount,
            gross_up_pct=data.gross_up_pct,
            notes=data.notes,
        )
        db.add(o)
        db.flush()
        audit_log(
            db, actor_id, "opex_pass_throughs.create", "opex_pass_throughs", o.id,
            {"lease_version_id": o.lease_version_id, "method": o.method},
        )
    _LOG.info("OPEX_CREATED id=%s lease_version_id=%s method=%s", o.id, o.lease_version_id, o.method)
    return opex_to_dict(o)


def get_opex(db: Session, opex_id: str) -> dict[str, Any]:
    return opex_to_dict(_require(db, opex_id))


def list_opex(
    db: Session,
    filters: Optional[dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> dict[str, Any]:
    q = apply_filters(db.query(OpexPassThrough), "opex_pass_throughs", filters or {})
    rows, page = paginate(apply_sort(q, "opex_pass_throughs", sort_by, descending), limit, offset)
    return {"data": [opex_to_dict(o) for o in rows], "pagination": page}


def update_opex(
    db: Session, opex_id: str, data: OpexPassThroughUpdate, actor_id: Optional[str] = None
) -> dict[str, Any]:
    values = data.provided()
    if not values:
        raise ValidationError("No fields to update")
    if "method" in values and values["method"] is None:
        raise ValidationError("method cannot be null", [{"field": "method"}])
    with transaction(db):
        o = _require(db, opex_id)
        changed = apply_updates(o, "opex_pass_throughs", values)
        if changed:
            audit_log(db, actor_id, "opex_pass_throughs.update", "opex_pass_throughs", o.id, changed)
    return opex_to_dict(o)


def delete_opex(db: Session, opex_id: str, actor_id: Optional[str] = None) -> None:
    with transaction(db):
        o = _require(db, opex_id)
        db.delete(o)
        audit_log(
            db, actor_id, "opex_pass_throughs.delete", "opex_pass_throughs", opex_id,
            {"lease_version_id": o.lease_version_id},
        )
    _LOG.info("OPEX_DELETED id=%s", opex_id)
