"""Overlap pre-check and conflict reporting shared by versions and interval records."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from engine.intervals import DateInterval, find_conflict
from services.errors import OverlapConflictError

_LOG = logging.getLogger("uvicorn.error")


def overlap_error(
    resource: str,
    conflict: Any,
    interval_of: Callable[[Any], Optional[DateInterval]],
    field: str,
    candidate: DateInterval,
) -> OverlapConflictError:
    existing = interval_of(conflict)
    label = f"version {conflict.version_num}" if hasattr(conflict, "version_num") else f"{resource} {conflict.id}"
    return OverlapConflictError(
        f"{field} {candidate.to_literal()} overlaps {label} ({existing.to_literal()})",
        conflicting_id=conflict.id,
        conflicting_interval=existing.to_literal(),
        field=field,
        value=candidate.to_literal(),
    )


def check_no_overlap(
    db: Session,
    model: type,
    partition_attr: str,
    partition_value: str,
    candidate: Optional[DateInterval],
    *,
    interval_of: Callable[[Any], Optional[DateInterval]],
    resource: str,
    field: str,
    exclude_id: Optional[str] = None,
) -> None:
    """Raise OverlapConflictError if `candidate` overlaps a stored row in the same partition."""
    if candidate is None:
        return
    rows = db.query(model).filter(getattr(model, partition_attr) == partition_value).all()
    conflict = find_conflict(
        candidate,
        partition_value,
        rows,
        key_of=lambda r: getattr(r, partition_attr),
        interval_of=interval_of,
        id_of=lambda r: r.id,
        exclude_id=exclude_id,
    )
    if conflict is not None:
        _LOG.info(
            "OVERLAP_REJECTED resource=%s partition=%s conflicting_id=%s",
            resource,
            partition_value,
            conflict.id,
        )
        raise overlap_error(resource, conflict, interval_of, field, candidate)


def describe_overlap(
    db: Session,
    model: type,
    partition_attr: str,
    partition_value: str,
    candidate: DateInterval,
    *,
    interval_of: Callable[[Any], Optional[DateInterval]],
    resource: str,
    field: str,
    exclude_id: Optional[str] = None,
) -> Optional[OverlapConflictError]:
    """
    The storage exclusion constraint fired (a concurrent writer won the race).
    Re-read the partition after rollback to name the conflicting row; None if
    it is no longer there.
    """
    try:
        check_no_overlap(
            db,
            model,
            partition_attr,
            partition_value,
            candidate,
            interval_of=interval_of,
            resource=resource,
            field=field,
            exclude_id=exclude_id,
        )
    except OverlapConflictError as named:
        return named
    finally:
        db.rollback()
    return None
