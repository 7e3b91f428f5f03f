"""
Lease API: leases and versions, rent schedules, options, concessions, OpEx
pass-throughs, critical dates, batch and reports. Callers are authorized
upstream; X-Actor-Id is trusted and used for audit only.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.orm import Session

from db.session import get_db
from models import (
    ConcessionCreate,
    ConcessionUpdate,
    CriticalDateCreate,
    CriticalDateUpdate,
    LeaseCreate,
    LeaseUpdate,
    LeaseVersionIn,
    OptionCreate,
    OptionExercise,
    OptionUpdate,
    OpexPassThroughCreate,
    OpexPassThroughUpdate,
    RentScheduleCreate,
    RentScheduleUpdate,
)
from services import batch, critical_dates, interval_records, opex, reports, versioning
from services.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/api/v1", tags=["api"])


def actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return (x_actor_id or "").strip() or None


def _descending(order: Optional[str]) -> bool:
    if order is None:
        return False
    o = order.strip().lower()
    if o not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'", [{"field": "order", "value": order}])
    return o == "desc"


def _upper(value: Optional[str]) -> Optional[str]:
    return value.strip().upper() if value else None


# --- Leases ---

@router.post("/leases", status_code=201)
def create_lease(body: LeaseCreate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    return versioning.create_lease(db, body, actor)


@router.get("/leases")
def list_leases(
    property_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    landlord_id: Optional[str] = None,
    master_lease_num: Optional[str] = None,
    state: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = {
        "property_id": property_id,
        "tenant_id": tenant_id,
        "landlord_id": landlord_id,
        "master_lease_num": master_lease_num,
    }
    return versioning.list_leases(db, filters, state, sort_by, _descending(order), limit, offset)


@router.get("/leases/{lease_id}")
def get_lease(lease_id: str, db: Session = Depends(get_db)):
    return versioning.get_lease(db, lease_id)


@router.patch("/leases/{lease_id}")
def update_lease(
    lease_id: str, body: LeaseUpdate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return versioning.update_lease(db, lease_id, body, actor)


@router.delete("/leases/{lease_id}")
def delete_lease(lease_id: str, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    versioning.delete_lease(db, lease_id, actor)
    return {"ok": True}


# --- Versions ---

@router.post("/leases/{lease_id}/versions", status_code=201)
def create_amendment(
    lease_id: str, body: LeaseVersionIn, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return versioning.create_amendment(db, lease_id, body, actor)


@router.get("/leases/{lease_id}/versions")
def list_versions(
    lease_id: str, limit: Optional[int] = None, offset: Optional[int] = None, db: Session = Depends(get_db)
):
    return versioning.list_version_history(db, lease_id, limit, offset)


@router.get("/leases/{lease_id}/versions/current")
def get_current_version(lease_id: str, db: Session = Depends(get_db)):
    current = versioning.get_current_version(db, lease_id)
    if current is None:
        raise NotFoundError("Lease has no versions", [{"field": "lease_id", "value": lease_id}])
    return current


@router.get("/lease-versions/{version_id}")
def get_version(version_id: str, db: Session = Depends(get_db)):
    return versioning.get_version(db, version_id)


# --- Rent schedules ---

@router.post("/rent-schedules", status_code=201)
def create_rent_schedule(
    body: RentScheduleCreate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return interval_records.create_interval_record(db, "rent_schedules", body.lease_version_id, body, actor)


@router.get("/rent-schedules")
def list_rent_schedules(
    lease_version_id: Optional[str] = None,
    basis: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = {"lease_version_id": lease_version_id, "basis": _upper(basis)}
    return interval_records.list_interval_records(
        db, "rent_schedules", filters, sort_by, _descending(order), limit, offset
    )


@router.get("/rent-schedules/{record_id}")
def get_rent_schedule(record_id: str, db: Session = Depends(get_db)):
    return interval_records.get_interval_record(db, "rent_schedules", record_id)


@router.patch("/rent-schedules/{record_id}")
def update_rent_schedule(
    record_id: str,
    body: RentScheduleUpdate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(actor_id),
):
    return interval_records.update_interval_record(db, "rent_schedules", record_id, body, actor)


@router.delete("/rent-schedules/{record_id}")
def delete_rent_schedule(record_id: str, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    interval_records.delete_interval_record(db, "rent_schedules", record_id, actor)
    return {"ok": True}


# --- Options ---

@router.post("/options", status_code=201)
def create_option(body: OptionCreate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    return interval_records.create_interval_record(db, "options", body.lease_version_id, body, actor)


@router.get("/options")
def list_options(
    lease_version_id: Optional[str] = None,
    option_type: Optional[str] = None,
    exercised: Optional[bool] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = {"lease_version_id": lease_version_id, "option_type": _upper(option_type), "exercised": exercised}
    return interval_records.list_interval_records(db, "options", filters, sort_by, _descending(order), limit, offset)


@router.get("/options/{record_id}")
def get_option(record_id: str, db: Session = Depends(get_db)):
    return interval_records.get_interval_record(db, "options", record_id)


@router.patch("/options/{record_id}")
def update_option(
    record_id: str, body: OptionUpdate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return interval_records.update_interval_record(db, "options", record_id, body, actor)


@router.delete("/options/{record_id}")
def delete_option(record_id: str, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    interval_records.delete_interval_record(db, "options", record_id, actor)
    return {"ok": True}


@router.post("/options/{record_id}/exercise")
def exercise_option(
    record_id: str,
    body: Optional[OptionExercise] = None,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(actor_id),
):
    exercised_date = body.exercised_date if body is not None else None
    return interval_records.exercise_option(db, record_id, exercised_date, actor)


# --- Concessions ---

@router.post("/concessions", status_code=201)
def create_concession(
    body: ConcessionCreate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return interval_records.create_interval_record(db, "concessions", body.lease_version_id, body, actor)


@router.get("/concessions")
def list_concessions(
    lease_version_id: Optional[str] = None,
    kind: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = {"lease_version_id": lease_version_id, "kind": _upper(kind)}
    return interval_records.list_interval_records(
        db, "concessions", filters, sort_by, _descending(order), limit, offset
    )


@router.get("/concessions/{record_id}")
def get_concession(record_id: str, db: Session = Depends(get_db)):
    return interval_records.get_interval_record(db, "concessions", record_id)


@router.patch("/concessions/{record_id}")
def update_concession(
    record_id: str, body: ConcessionUpdate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return interval_records.update_interval_record(db, "concessions", record_id, body, actor)


@router.delete("/concessions/{record_id}")
def delete_concession(record_id: str, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    interval_records.delete_interval_record(db, "concessions", record_id, actor)
    return {"ok": True}


# --- OpEx pass-throughs ---

@router.post("/opex-pass-throughs", status_code=201)
def create_opex_pass_through(
    body: OpexPassThroughCreate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return opex.create_opex(db, body, actor)


@router.get("/opex-pass-throughs")
def list_opex_pass_throughs(
    lease_version_id: Optional[str] = None,
    method: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = {"lease_version_id": lease_version_id, "method": _upper(method)}
    return opex.list_opex(db, filters, sort_by, _descending(order), limit, offset)


@router.get("/opex-pass-throughs/{opex_id}")
def get_opex_pass_through(opex_id: str, db: Session = Depends(get_db)):
    return opex.get_opex(db, opex_id)


@router.patch("/opex-pass-throughs/{opex_id}")
def update_opex_pass_through(
    opex_id: str, body: OpexPassThroughUpdate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return opex.update_opex(db, opex_id, body, actor)


@router.delete("/opex-pass-throughs/{opex_id}")
def delete_opex_pass_through(opex_id: str, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)):
    opex.delete_opex(db, opex_id, actor)
    return {"ok": True}


# --- Critical dates ---

@router.post("/critical-dates", status_code=201)
def create_critical_date(
    body: CriticalDateCreate, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    return critical_dates.create_critical_date(db, body, actor)


@router.get("/critical-dates")
def list_critical_dates(
    lease_id: Optional[str] = None,
    kind: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    filters = {"lease_id": lease_id, "kind": _upper(kind)}
    return critical_dates.list_critical_dates(db, filters, sort_by, _descending(order), limit, offset)


@router.get("/critical-dates/{critical_date_id}")
def get_critical_date(critical_date_id: str, db: Session = Depends(get_db)):
    return critical_dates.get_critical_date(db, critical_date_id)


@router.patch("/critical-dates/{critical_date_id}")
def update_critical_date(
    critical_date_id: str,
    body: CriticalDateUpdate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(actor_id),
):
    return critical_dates.update_critical_date(db, critical_date_id, body, actor)


@router.delete("/critical-dates/{critical_date_id}")
def delete_critical_date(
    critical_date_id: str, db: Session = Depends(get_db), actor: Optional[str] = Depends(actor_id)
):
    critical_dates.delete_critical_date(db, critical_date_id, actor)
    return {"ok": True}


# --- Batch ---

@router.post("/batch/{entity_kind}")
def apply_batch(
    entity_kind: str,
    payload: Any = Body(default=None),
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(actor_id),
):
    records = payload.get("records") if isinstance(payload, dict) else None
    return batch.apply_batch(db, entity_kind, records, actor)


# --- Reports ---

@router.get("/reports/expirations")
def expirations_report(
    as_of: Optional[date] = None,
    within_months: Optional[float] = None,
    property_id: Optional[str] = None,
    state: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.expirations(db, as_of, within_months, property_id, state, limit, offset)


@router.get("/reports/rent-roll")
def rent_roll_report(
    as_of: Optional[date] = None,
    property_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.rent_roll(db, as_of, property_id, limit, offset)


@router.get("/reports/options")
def options_report(
    as_of: Optional[date] = None,
    option_type: Optional[str] = None,
    window_open: Optional[bool] = None,
    exercised: Optional[bool] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.options_status(db, as_of, _upper(option_type), window_open, exercised, limit, offset)


@router.get("/reports/free-rent")
def free_rent_report(
    as_of: Optional[date] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.free_rent(db, as_of, limit, offset)


@router.get("/reports/ti-allowances")
def ti_allowances_report(
    property_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.ti_allowances(db, property_id, limit, offset)


@router.get("/reports/opex-summary")
def opex_summary_report(
    property_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.opex_summary(db, property_id, limit, offset)


@router.get("/reports/critical-dates")
def critical_dates_report(
    as_of: Optional[date] = None,
    days: int = Query(default=reports.UPCOMING_DAYS),
    kind: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.upcoming_critical_dates(db, as_of, days, _upper(kind), limit, offset)


@router.get("/reports/amendments")
def amendment_history_report(
    lease_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return reports.amendment_history(db, lease_id, limit, offset)
