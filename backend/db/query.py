"""
Structured filtering, sorting, pagination and partial updates.

Each entity lists the fields callers may filter on, sort by and update; anything
else is rejected as a ValidationError before a statement is built.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from sqlalchemy.orm import Query

from db.models import (
    Concession,
    CriticalDate,
    Lease,
    LeaseOption,
    LeaseVersion,
    OpexPassThrough,
    Party,
    Property,
    RentSchedule,
)
from services.errors import ValidationError

DEFAULT_LIMIT = 50
MAX_LIMIT = 500

EQ = "eq"
CONTAINS = "contains"


@dataclass(frozen=True)
class EntityFields:
    model: type
    filters: dict[str, str] = field(default_factory=dict)
    sortable: tuple[str, ...] = ()
    updatable: tuple[str, ...] = ()
    default_sort: str = "created_at"


ENTITIES: dict[str, EntityFields] = {
    "properties": EntityFields(
        Property,
        filters={"name": CONTAINS, "state": EQ, "active": EQ},
        sortable=("name", "state", "created_at"),
        updatable=("name", "address", "state", "postal_code", "country", "total_rsf", "active"),
        default_sort="name",
    ),
    "parties": EntityFields(
        Party,
        filters={"legal_name": CONTAINS, "party_type": EQ, "active": EQ},
        sortable=("legal_name", "party_type", "created_at"),
        updatable=("legal_name", "party_type", "active"),
        default_sort="legal_name",
    ),
    "leases": EntityFields(
        Lease,
        filters={"property_id": EQ, "tenant_id": EQ, "landlord_id": EQ, "master_lease_num": CONTAINS},
        sortable=("master_lease_num", "execution_date", "created_at"),
        updatable=("property_id", "landlord_id", "tenant_id", "master_lease_num", "execution_date"),
        default_sort="master_lease_num",
    ),
    "lease_versions": EntityFields(
        LeaseVersion,
        filters={"lease_id": EQ, "is_current": EQ},
        sortable=("version_num",),
        default_sort="version_num",
    ),
    "rent_schedules": EntityFields(
        RentSchedule,
        filters={"lease_version_id": EQ, "basis": EQ},
        sortable=("period_start", "amount", "created_at"),
        updatable=("amount", "basis"),
        default_sort="period_start",
    ),
    "options": EntityFields(
        LeaseOption,
        filters={"lease_version_id": EQ, "option_type": EQ, "exercised": EQ},
        sortable=("window_start", "option_type", "created_at"),
        updatable=("option_type", "terms", "exercised", "exercised_date"),
        default_sort="window_start",
    ),
    "concessions": EntityFields(
        Concession,
        filters={"lease_version_id": EQ, "kind": EQ},
        sortable=("applies_start", "kind", "created_at"),
        updatable=("kind", "value_amount", "value_basis", "notes"),
        default_sort="created_at",
    ),
    "opex_pass_throughs": EntityFields(
        OpexPassThrough,
        filters={"lease_version_id": EQ, "method": EQ},
        sortable=("method", "stop_amount", "created_at"),
        updatable=("method", "stop_amount", "gross_up_pct", "notes"),
        default_sort="created_at",
    ),
    "critical_dates": EntityFields(
        CriticalDate,
        filters={"lease_id": EQ, "kind": EQ},
        sortable=("date_value", "kind", "created_at"),
        updatable=("kind", "date_value", "notes"),
        default_sort="date_value",
    ),
}


def entity(name: str) -> EntityFields:
    try:
        return ENTITIES[name]
    except KeyError:
        raise ValueError(f"Unknown entity {name!r}") from None


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def apply_filters(query: Query, entity_name: str, filters: dict[str, Any]) -> Query:
    """Add WHERE clauses for the non-None filters; unknown keys are rejected."""
    spec = entity(entity_name)
    for name, value in filters.items():
        if value is None:
            continue
        op = spec.filters.get(name)
        if op is None:
            raise ValidationError(f"Cannot filter {entity_name} by {name!r}", [{"field": name}])
        column = getattr(spec.model, name)
        if op == CONTAINS:
            query = query.filter(column.icontains(value, autoescape=True))
        else:
            query = query.filter(column == _plain(value))
    return query


def apply_sort(query: Query, entity_name: str, sort_by: Optional[str] = None, descending: bool = False) -> Query:
    spec = entity(entity_name)
    name = sort_by or spec.default_sort
    if name not in spec.sortable:
        raise ValidationError(
            f"Cannot sort {entity_name} by {name!r}",
            [{"field": "sort_by", "value": name, "allowed": list(spec.sortable)}],
        )
    column = getattr(spec.model, name)
    # id breaks ties so pages are stable
    return query.order_by(column.desc() if descending else column.asc(), spec.model.id.asc())


def check_page(limit: Optional[int], offset: Optional[int]) -> tuple[int, int]:
    limit = DEFAULT_LIMIT if limit is None else limit
    offset = 0 if offset is None else offset
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}", [{"field": "limit", "value": limit}])
    if offset < 0:
        raise ValidationError("offset must be non-negative", [{"field": "offset", "value": offset}])
    return limit, offset


def paginate(query: Query, limit: Optional[int] = None, offset: Optional[int] = None) -> tuple[list, dict[str, int]]:
    """Run a list query; returns (rows, pagination block)."""
    limit, offset = check_page(limit, offset)
    total = query.order_by(None).count()
    rows = query.limit(limit).offset(offset).all()
    return rows, {"total": total, "limit": limit, "offset": offset, "count": len(rows)}


def page_of(items: list, limit: Optional[int] = None, offset: Optional[int] = None) -> tuple[list, dict[str, int]]:
    """Same pagination block for lists built in memory (reports)."""
    limit, offset = check_page(limit, offset)
    rows = items[offset:offset + limit]
    return rows, {"total": len(items), "limit": limit, "offset": offset, "count": len(rows)}


def apply_updates(row: Any, entity_name: str, values: dict[str, Any]) -> dict[str, Any]:
    """Assign allowed fields onto an ORM row. Returns the changed fields (old, new)."""
    spec = entity(entity_name)
    unknown = [k for k in values if k not in spec.updatable]
    if unknown:
        raise ValidationError(
            f"Fields not updatable on {entity_name}: {', '.join(sorted(unknown))}",
            [{"field": k} for k in sorted(unknown)],
        )
    changed: dict[str, Any] = {}
    for name, value in values.items():
        value = _plain(value)
        old = getattr(row, name)
        if old != value:
            setattr(row, name, value)
            changed[name] = {"old": _jsonable(old), "new": _jsonable(value)}
    return changed


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
