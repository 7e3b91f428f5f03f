"""
Classify storage-layer failures into the lease-core error taxonomy.

PostgreSQL SQLSTATE codes are read from the DBAPI exception (psycopg2 `pgcode`,
psycopg 3 `sqlstate`). SQLite (used in tests) carries no code, so its messages
are matched as a fallback.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from services.errors import (
    ConcurrentAmendmentError,
    DuplicateLeaseError,
    InvalidReferenceError,
    LeaseCoreError,
    OverlapConflictError,
    ServiceUnavailableError,
    ValidationError,
)

_LOG = logging.getLogger("uvicorn.error")

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
NOT_NULL_VIOLATION = "23502"
EXCLUSION_VIOLATION = "23P01"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"
QUERY_CANCELED = "57014"
CONNECTION_CLASS = "08"
DATA_EXCEPTION_CLASS = "22"

CURRENT_VERSION_INDEX = "uq_lease_versions_current"
LEASE_NUMBER_CONSTRAINT = "uq_leases_property_lease_num"
VERSION_NUMBER_CONSTRAINT = "uq_lease_versions_lease_num"

# Exclusion constraint name -> (resource, interval field)
EXCLUSION_CONSTRAINTS = {
    "ex_lease_versions_no_overlap": ("lease version", "effective_interval"),
    "ex_rent_schedules_no_overlap": ("rent schedule", "period_interval"),
    "ex_lease_options_no_overlap": ("option", "window_interval"),
    "ex_concessions_no_overlap": ("concession", "applies_interval"),
}


def sqlstate_of(error: DBAPIError) -> Optional[str]:
    orig = getattr(error, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def constraint_of(error: DBAPIError) -> str:
    orig = getattr(error, "orig", None)
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None) or getattr(orig, "constraint_name", None)
    if name:
        return str(name)
    # SQLite: "UNIQUE constraint failed: lease_versions.lease_id"
    return str(orig or error)


def translate_db_error(error: DBAPIError) -> LeaseCoreError:
    """Map a DBAPIError to the matching taxonomy member; never returns the raw error."""
    code = sqlstate_of(error) or ""
    constraint = constraint_of(error)
    message = str(getattr(error, "orig", None) or error)

    if code == EXCLUSION_VIOLATION:
        resource, field = EXCLUSION_CONSTRAINTS.get(constraint, ("record", "interval"))
        return OverlapConflictError(
            f"{resource.capitalize()} interval overlaps an existing {resource}",
            field=field,
        )
    if code in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED, LOCK_NOT_AVAILABLE):
        return ConcurrentAmendmentError(
            "Concurrent modification detected. Please retry.",
            [{"type": "serialization_failure", "sqlstate": code}],
        )
    if code == UNIQUE_VIOLATION or (not code and "UNIQUE constraint failed" in message):
        if CURRENT_VERSION_INDEX in constraint or VERSION_NUMBER_CONSTRAINT in constraint or (
            not code and "lease_versions" in message
        ):
            return ConcurrentAmendmentError(
                "Another amendment for this lease committed first. Please retry.",
                [{"type": "unique_violation", "constraint": constraint}],
            )
        if LEASE_NUMBER_CONSTRAINT in constraint or (not code and "leases." in message):
            return DuplicateLeaseError(
                "Lease with this master lease number already exists for this property",
                [{"type": "unique_violation", "constraint": constraint}],
            )
        return DuplicateLeaseError(
            "Resource already exists", [{"type": "unique_violation", "constraint": constraint}]
        )
    if code == FOREIGN_KEY_VIOLATION or (not code and "FOREIGN KEY constraint failed" in message):
        return InvalidReferenceError(
            "Referenced resource does not exist",
            [{"type": "foreign_key_violation", "constraint": constraint}],
        )
    if code in (CHECK_VIOLATION, NOT_NULL_VIOLATION) or code.startswith(DATA_EXCEPTION_CLASS) or (
        not code and ("CHECK constraint failed" in message or "NOT NULL constraint failed" in message)
    ):
        return ValidationError(
            "Data validation failed", [{"type": "constraint_violation", "constraint": constraint}]
        )
    if code.startswith(CONNECTION_CLASS) or code == QUERY_CANCELED or (
        isinstance(error, OperationalError) and not isinstance(error, IntegrityError)
    ):
        _LOG.error("DB_UNAVAILABLE sqlstate=%s err=%s", code or "-", message[:300])
        return ServiceUnavailableError(
            "Database unavailable or timed out. Retry with backoff.",
            [{"type": "service_unavailable", "sqlstate": code or None}],
        )
    _LOG.error("DB_ERROR sqlstate=%s err=%s", code or "-", message[:300])
    return LeaseCoreError("Database operation failed", [{"type": "database_error", "sqlstate": code or None}])
