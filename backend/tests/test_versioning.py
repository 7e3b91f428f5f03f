from datetime import date

import pytest

from db.models import AuditLog, Lease, LeaseVersion
from models import LeaseCreate, LeaseUpdate, LeaseVersionIn
from services import versioning
from services.errors import (
    ConcurrentAmendmentError,
    DuplicateLeaseError,
    InvalidReferenceError,
    LeaseInUseError,
    NotFoundError,
    OverlapConflictError,
    ValidationError,
)

NOW = date(2026, 6, 1)


def _version(literal, **extra):
    return LeaseVersionIn.model_validate({"effective_interval": literal, **extra})


def _new_lease(db, seed, literal="[2024-01-01,2029-01-01)", num="L-100"):
    prop = seed.property()
    landlord = seed.party("Market Owner LP", "LANDLORD")
    tenant = seed.party("Acme Tenant LLC", "TENANT")
    body = LeaseCreate(
        property_id=prop.id,
        landlord_id=landlord.id,
        tenant_id=tenant.id,
        master_lease_num=num,
        initial_version=_version(literal, premises_rsf=5000, term_months=60, escalation_method="fixed"),
    )
    return versioning.create_lease(db, body, actor_id="user-1", now=NOW)


def _versions(db, lease_id):
    db.expire_all()
    return db.query(LeaseVersion).filter(LeaseVersion.lease_id == lease_id).order_by(LeaseVersion.version_num).all()


def test_create_lease_with_initial_version(db, seed):
    out = _new_lease(db, seed)
    assert out["current_version"]["version_num"] == 0
    assert out["current_version"]["is_current"] is True
    assert out["current_version"]["escalation_method"] == "FIXED"
    assert out["current_version"]["effective_interval"]["literal"] == "[2024-01-01,2029-01-01)"
    assert out["expiration_date"] == date(2028, 12, 31)
    actions = {a.action for a in db.query(AuditLog).all()}
    assert {"lease.create", "lease_version.create"} <= actions


def test_amendment_promotes_new_version(db, seed):
    lease = _new_lease(db, seed)
    out = versioning.create_amendment(db, lease["lease_id"], _version("[2029-01-01,2031-01-01)"), "user-1", NOW)
    assert out["version_num"] == 1
    assert out["is_current"] is True

    v0, v1 = _versions(db, lease["lease_id"])
    assert v0.is_current is False
    assert v1.is_current is True
    assert v0.effective_interval.to_literal() == "[2024-01-01,2029-01-01)"
    assert v1.created_by == "user-1"


def test_lease_relationships_and_current_version(db, seed):
    lease = _new_lease(db, seed)
    versioning.create_amendment(db, lease["lease_id"], _version("[2029-01-01,2031-01-01)"), None, NOW)
    db.expire_all()
    row = db.get(Lease, lease["lease_id"])
    assert row.property.name == "One Market Plaza"
    assert row.landlord.legal_name == "Market Owner LP"
    assert row.current_version.version_num == 1
    assert len(row.versions) == 2


def test_amendment_starting_where_version_zero_ends(db, seed):
    lease = _new_lease(db, seed, literal="[2024-01-01,2026-01-01)")
    out = versioning.create_amendment(db, lease["lease_id"], _version("[2026-01-01,2031-01-01)"), None, NOW)
    assert out["version_num"] == 1
    current = versioning.get_current_version(db, lease["lease_id"], NOW)
    assert current["lease_version_id"] == out["lease_version_id"]


def test_overlapping_amendment_names_version_zero(db, seed):
    lease = _new_lease(db, seed)
    v0_id = lease["current_version"]["lease_version_id"]
    with pytest.raises(OverlapConflictError) as exc:
        versioning.create_amendment(db, lease["lease_id"], _version("[2025-06-01,2030-01-01)"), None, NOW)
    err = exc.value
    assert err.conflicting_id == v0_id
    assert err.conflicting_interval == "[2024-01-01,2029-01-01)"
    assert err.status_code == 409
    assert err.details[0]["field"] == "effective_interval"

    versions = _versions(db, lease["lease_id"])
    assert len(versions) == 1
    assert versions[0].is_current is True


def test_touching_amendment_is_accepted(db, seed):
    lease = _new_lease(db, seed)
    out = versioning.create_amendment(db, lease["lease_id"], _version("[2029-01-01,2030-01-01]"), None, NOW)
    assert out["effective_interval"]["literal"] == "[2029-01-01,2030-01-02)"


def test_amendment_unknown_lease(db):
    with pytest.raises(NotFoundError):
        versioning.create_amendment(db, "missing", _version("[2024-01-01,2025-01-01)"), None, NOW)


def test_amendment_unknown_suite_is_reference_error(db, seed):
    lease = _new_lease(db, seed)
    with pytest.raises(InvalidReferenceError):
        versioning.create_amendment(
            db, lease["lease_id"], _version("[2030-01-01,2031-01-01)", suite_id="nope"), None, NOW
        )
    assert len(_versions(db, lease["lease_id"])) == 1


def test_single_current_and_monotonic_after_many_amendments(db, seed):
    lease = _new_lease(db, seed, literal="[2026-01-01,2027-01-01)")
    for year in range(2027, 2033):
        versioning.create_amendment(db, lease["lease_id"], _version(f"[{year}-01-01,{year + 1}-01-01)"), None, NOW)
        versions = _versions(db, lease["lease_id"])
        assert sum(1 for v in versions if v.is_current) == 1
        nums = [v.version_num for v in versions]
        assert nums == list(range(len(nums)))
        assert versions[-1].is_current


def test_version_history_ascending_and_paginated(db, seed):
    lease = _new_lease(db, seed, literal="[2026-01-01,2027-01-01)")
    for year in (2027, 2028, 2029):
        versioning.create_amendment(db, lease["lease_id"], _version(f"[{year}-01-01,{year + 1}-01-01)"), None, NOW)
    page = versioning.list_version_history(db, lease["lease_id"], limit=2, offset=1, now=NOW)
    assert [v["version_num"] for v in page["data"]] == [1, 2]
    assert page["pagination"] == {"total": 4, "limit": 2, "offset": 1, "count": 2}


def test_failure_after_demotion_keeps_previous_version_current(db, seed, monkeypatch):
    lease = _new_lease(db, seed)

    def broken_audit(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(versioning, "audit_log", broken_audit)
    with pytest.raises(RuntimeError):
        versioning.create_amendment(db, lease["lease_id"], _version("[2029-01-01,2031-01-01)"), None, NOW)

    versions = _versions(db, lease["lease_id"])
    assert len(versions) == 1
    assert versions[0].version_num == 0
    assert versions[0].is_current is True


def test_amendment_retries_concurrent_conflicts(db, seed, monkeypatch):
    lease = _new_lease(db, seed)
    real = versioning.append_version
    calls = {"n": 0}

    def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrentAmendmentError("Concurrent modification detected. Please retry.")
        return real(*args, **kwargs)

    monkeypatch.setattr(versioning, "append_version", flaky)
    out = versioning.create_amendment(db, lease["lease_id"], _version("[2029-01-01,2030-01-01)"), None, NOW)
    assert calls["n"] == 2
    assert out["version_num"] == 1


def test_amendment_gives_up_after_max_attempts(db, seed, monkeypatch):
    lease = _new_lease(db, seed)

    def always(*args, **kwargs):
        raise ConcurrentAmendmentError("Concurrent modification detected. Please retry.")

    monkeypatch.setattr(versioning, "append_version", always)
    monkeypatch.setattr(versioning, "AMENDMENT_MAX_ATTEMPTS", 2)
    with pytest.raises(ConcurrentAmendmentError) as exc:
        versioning.create_amendment(db, lease["lease_id"], _version("[2029-01-01,2030-01-01)"), None, NOW)
    assert exc.value.retryable is True
    assert len(_versions(db, lease["lease_id"])) == 1


def test_overlap_is_not_retried(db, seed, monkeypatch):
    lease = _new_lease(db, seed)
    real = versioning.append_version
    calls = {"n": 0}

    def counting(*args, **kwargs):
        calls["n"] += 1
        return real(*args, **kwargs)

    monkeypatch.setattr(versioning, "append_version", counting)
    with pytest.raises(OverlapConflictError):
        versioning.create_amendment(db, lease["lease_id"], _version("[2025-06-01,2030-01-01)"), None, NOW)
    assert calls["n"] == 1


def test_create_lease_rejects_wrong_party_roles(db, seed):
    prop = seed.property()
    tenant = seed.party("Acme Tenant LLC", "TENANT")
    with pytest.raises(ValidationError):
        versioning.create_lease(
            db,
            LeaseCreate(property_id=prop.id, landlord_id=tenant.id, tenant_id=tenant.id, master_lease_num="L-1"),
        )


def test_create_lease_unknown_property(db, seed):
    landlord = seed.party("Owner", "SUBLANDLORD")
    tenant = seed.party()
    with pytest.raises(InvalidReferenceError):
        versioning.create_lease(
            db, LeaseCreate(property_id="nope", landlord_id=landlord.id, tenant_id=tenant.id, master_lease_num="L-1")
        )
    assert db.query(Lease).count() == 0


def test_duplicate_master_lease_number(db, seed):
    first = _new_lease(db, seed)
    with pytest.raises(DuplicateLeaseError):
        versioning.create_lease(
            db,
            LeaseCreate(
                property_id=first["property_id"],
                landlord_id=first["landlord_id"],
                tenant_id=first["tenant_id"],
                master_lease_num="L-100",
            ),
        )


def test_update_lease_leaves_versions_alone(db, seed):
    lease = _new_lease(db, seed)
    out = versioning.update_lease(db, lease["lease_id"], LeaseUpdate(execution_date=date(2023, 12, 1)), "user-2", NOW)
    assert out["execution_date"] == date(2023, 12, 1)
    assert out["current_version"]["lease_version_id"] == lease["current_version"]["lease_version_id"]
    with pytest.raises(ValidationError):
        versioning.update_lease(db, lease["lease_id"], LeaseUpdate(), None, NOW)


def test_delete_lease_restricted_while_versions_exist(db, seed):
    lease = _new_lease(db, seed)
    with pytest.raises(LeaseInUseError):
        versioning.delete_lease(db, lease["lease_id"])

    bare = seed.lease("L-200")
    versioning.delete_lease(db, bare.id, "user-1")
    with pytest.raises(NotFoundError):
        versioning.get_lease(db, bare.id)


def test_list_leases_filters(db, seed):
    _new_lease(db, seed, num="ALPHA-1")
    _new_lease(db, seed, num="BETA-1")
    out = versioning.list_leases(db, {"master_lease_num": "alpha"}, now=NOW)
    assert [row["master_lease_num"] for row in out["data"]] == ["ALPHA-1"]
    out = versioning.list_leases(db, {}, state="CA", now=NOW)
    assert out["pagination"]["total"] == 2
    with pytest.raises(ValidationError):
        versioning.list_leases(db, {"notes": "x"})
