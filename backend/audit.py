"""Audit log helper. Call inside the mutation's transaction; the caller commits."""
from __future__ import annotations

import uuid
from sqlalchemy.orm import Session

from db.models import AuditLog

SYSTEM_ACTOR = "system"


def log(
    db: Session,
    actor_id: str | None,
    action: str,
    resource_type: str,
    resource_id: str | None = None,
    details: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_id=actor_id or SYSTEM_ACTOR,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or {},
    )
    db.add(entry)
    return entry
