"""Error taxonomy for the lease core. Routes map these to HTTP responses."""
from __future__ import annotations

from typing import Any, Optional


class LeaseCoreError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message, "details": self.details}
        if self.retryable:
            out["retryable"] = True
        return out


class ValidationError(LeaseCoreError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidReferenceError(LeaseCoreError):
    status_code = 400
    code = "INVALID_REFERENCE"


class NotFoundError(LeaseCoreError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(LeaseCoreError):
    status_code = 409
    code = "CONFLICT"


class OverlapConflictError(ConflictError):
    code = "INTERVAL_OVERLAP"

    def __init__(
        self,
        message: str,
        conflicting_id: Optional[str] = None,
        conflicting_interval: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[str] = None,
    ):
        detail: dict[str, Any] = {
            "conflicting_id": conflicting_id,
            "conflicting_interval": conflicting_interval,
        }
        if field:
            detail["field"] = field
        if value:
            detail["value"] = value
        super().__init__(message, [detail])
        self.conflicting_id = conflicting_id
        self.conflicting_interval = conflicting_interval


class ConcurrentAmendmentError(ConflictError):
    code = "CONCURRENT_MODIFICATION"
    retryable = True


class DuplicateLeaseError(ConflictError):
    code = "DUPLICATE_LEASE"


class LeaseInUseError(ConflictError):
    code = "LEASE_HAS_VERSIONS"


class OptionAlreadyExercisedError(ConflictError):
    code = "OPTION_ALREADY_EXERCISED"


class ServiceUnavailableError(LeaseCoreError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    retryable = True


class BatchAbortError(LeaseCoreError):
    """A batch unit was rolled back; `report` describes every record."""

    status_code = 400
    code = "BATCH_FAILED"

    def __init__(self, message: str, report: dict[str, Any]):
        super().__init__(message, [])
        self.report = report

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["report"] = self.report
        return out
