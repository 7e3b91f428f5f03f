"""
All-or-nothing batch create/update for properties, parties and leases.

Records are applied in order inside one transaction. A record with an id field
updates; without one it creates. The first failing record aborts the unit: the
transaction is rolled back and BatchAbortError carries a report in which every
record is failed (earlier ones ROLLED_BACK, later ones NOT_PROCESSED).
"""
from __future__ import annotations

import logging
import os
import uuid
from datetime import date
from typing import Any, Callable, Optional

from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from audit import log as audit_log
from db.errors import translate_db_error
from db.models import Party, Property
from db.query import apply_updates
from db.session import transaction
from models import BatchReport, EntityKind, LeaseBatchRecord, LeaseCreate, PartyIn, PropertyIn, RecordResult
from services.errors import BatchAbortError, LeaseCoreError, NotFoundError, ValidationError
from services.versioning import append_version, insert_lease, lease_to_dict, modify_lease, require_lease

_LOG = logging.getLogger("uvicorn.error")

BATCH_MAX_RECORDS = int(os.environ.get("BATCH_MAX_RECORDS", "100"))

ROLLED_BACK = "ROLLED_BACK"
NOT_PROCESSED = "NOT_PROCESSED"


def schema_error_details(e: SchemaError) -> list[dict[str, Any]]:
    return [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]


def _parse(schema: type, record: Any):
    if not isinstance(record, dict):
        raise ValidationError("Each record must be an object")
    try:
        return schema.model_validate(record)
    except SchemaError as e:
        raise ValidationError("Record failed validation", schema_error_details(e)) from e


def property_to_dict(p: Property) -> dict[str, Any]:
    return {
        "property_id": p.id,
        "name": p.name,
        "address": p.address,
        "state": p.state,
        "postal_code": p.postal_code,
        "country": p.country,
        "total_rsf": p.total_rsf,
        "active": p.active,
    }


def party_to_dict(p: Party) -> dict[str, Any]:
    return {"party_id": p.id, "legal_name": p.legal_name, "party_type": p.party_type, "active": p.active}


def _apply_property(db: Session, record: Any, actor_id: Optional[str], now: date) -> dict[str, Any]:
    data = _parse(PropertyIn, record)
    values = data.provided()
    property_id = values.pop("property_id", None)
    if property_id:
        row = db.get(Property, property_id)
        if row is None:
            raise NotFoundError("Property not found", [{"field": "property_id", "value": property_id}])
        changed = apply_updates(row, "properties", values)
        audit_log(db, actor_id, "properties.update", "properties", row.id, changed)
    else:
        if not values.get("name"):
            raise ValidationError("name is required", [{"field": "name"}])
        row = Property(id=str(uuid.uuid4()), **values)
        db.add(row)
        audit_log(db, actor_id, "properties.create", "properties", row.id, {"name": row.name})
    db.flush()
    return property_to_dict(row)


def _apply_party(db: Session, record: Any, actor_id: Optional[str], now: date) -> dict[str, Any]:
    data = _parse(PartyIn, record)
    values = data.provided()
    party_id = values.pop("party_id", None)
    if party_id:
        row = db.get(Party, party_id)
        if row is None:
            raise NotFoundError("Party not found", [{"field": "party_id", "value": party_id}])
        changed = apply_updates(row, "parties", values)
        audit_log(db, actor_id, "parties.update", "parties", row.id, changed)
    else:
        missing = [f for f in ("legal_name", "party_type") if not values.get(f)]
        if missing:
            raise ValidationError(f"{', '.join(missing)} required", [{"field": f} for f in missing])
        row = Party(
            id=str(uuid.uuid4()),
            legal_name=values["legal_name"],
            party_type=values["party_type"].value,
            active=values.get("active", True),
        )
        db.add(row)
        audit_log(db, actor_id, "parties.create", "parties", row.id, {"party_type": row.party_type})
    db.flush()
    return party_to_dict(row)


def _apply_lease(db: Session, record: Any, actor_id: Optional[str], now: date) -> dict[str, Any]:
    if isinstance(record, dict) and record.get("lease_id"):
        data = _parse(LeaseBatchRecord, record)
        if data.initial_version is not None:
            raise ValidationError(
                "initial_version is only allowed when creating a lease; use amendment",
                [{"field": "initial_version"}],
            )
        lease = require_lease(db, data.lease_id, lock=True)
        values = data.provided()
        for key in ("lease_id", "initial_version", "amendment"):
            values.pop(key, None)
        modify_lease(db, lease, values, actor_id)
        if data.amendment is not None:
            append_version(db, lease, data.amendment, actor_id)
    else:
        if isinstance(record, dict) and record.get("amendment") is not None:
            raise ValidationError(
                "amendment requires lease_id; new leases take initial_version", [{"field": "amendment"}]
            )
        lease = insert_lease(db, _parse(LeaseCreate, record), actor_id)
    return lease_to_dict(lease, now)


_HANDLERS: dict[EntityKind, Callable[[Session, Any, Optional[str], date], dict[str, Any]]] = {
    EntityKind.PROPERTIES: _apply_property,
    EntityKind.PARTIES: _apply_party,
    EntityKind.LEASES: _apply_lease,
}


def validate_batch(entity_kind: Any, records: Any) -> EntityKind:
    """Shape and size checks; runs before any transaction is opened."""
    try:
        kind = EntityKind(str(getattr(entity_kind, "value", entity_kind)).lower())
    except ValueError:
        raise ValidationError(
            f"Unsupported entity kind {entity_kind!r}",
            [{"field": "entity_kind", "allowed": [k.value for k in EntityKind]}],
        ) from None
    if not isinstance(records, list):
        raise ValidationError('Request body must contain a "records" array', [{"field": "records"}])
    if not records:
        raise ValidationError("Records array cannot be empty", [{"field": "records"}])
    if len(records) > BATCH_MAX_RECORDS:
        raise ValidationError(
            f"Batch size exceeds maximum of {BATCH_MAX_RECORDS} records",
            [{"field": "records", "max": BATCH_MAX_RECORDS, "received": len(records)}],
        )
    return kind


def _abort_report(kind: EntityKind, total: int, index: Optional[int], error: LeaseCoreError) -> dict[str, Any]:
    results = []
    for i in range(total):
        if index is None or i == index:
            err = error.to_dict()
        elif i < index:
            err = {"code": ROLLED_BACK, "message": f"Rolled back because record {index} failed"}
        else:
            err = {"code": NOT_PROCESSED, "message": f"Not processed because record {index} failed"}
        results.append(RecordResult(index=i, success=False, error=err))
    report = BatchReport(entity_kind=kind, total=total, successful=0, failed=total, results=results)
    return report.model_dump(mode="json")


def apply_batch(
    db: Session,
    entity_kind: Any,
    records: Any,
    actor_id: Optional[str] = None,
    now: Optional[date] = None,
) -> dict[str, Any]:
    """Apply every record or none. Returns the report; raises BatchAbortError on any failure."""
    kind = validate_batch(entity_kind, records)
    handler = _HANDLERS[kind]
    now = now or date.today()
    total = len(records)
    results: list[RecordResult] = []
    failed_index: Optional[int] = None
    try:
        with transaction(db):
            for index, record in enumerate(records):
                failed_index = index
                try:
                    data = handler(db, record, actor_id, now)
                except DBAPIError as e:
                    raise translate_db_error(e) from e
                results.append(RecordResult(index=index, success=True, data=data))
            # Failures past this point (commit) belong to the whole unit
            failed_index = None
    except LeaseCoreError as e:
        db.rollback()
        _LOG.warning(
            "BATCH_ABORTED entity_kind=%s total=%s failed_index=%s code=%s",
            kind.value,
            total,
            failed_index,
            e.code,
        )
        where = f"record {failed_index}" if failed_index is not None else "commit"
        raise BatchAbortError(
            f"Batch aborted at {where}: {e.message}",
            _abort_report(kind, total, failed_index, e),
        ) from e
    _LOG.info("BATCH_APPLIED entity_kind=%s total=%s", kind.value, total)
    report = BatchReport(entity_kind=kind, total=total, successful=total, failed=0, results=results)
    return report.model_dump(mode="json")
