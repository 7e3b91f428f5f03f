"""End-to-end through the FastAPI app against the in-memory database."""
import pytest

API = "/api/v1"


@pytest.fixture()
def refs(seed):
    prop = seed.property()
    landlord = seed.party("Market Owner LP", "LANDLORD")
    tenant = seed.party("Acme Tenant LLC", "TENANT")
    return {"property_id": prop.id, "landlord_id": landlord.id, "tenant_id": tenant.id}


def _create_lease(client, refs, num="L-100", interval="[2024-01-01,2029-01-01)"):
    body = {**refs, "master_lease_num": num, "initial_version": {"effective_daterange": interval}}
    r = client.post(f"{API}/leases", json=body, headers={"X-Actor-Id": "user-1"})
    assert r.status_code == 201, r.text
    return r.json()


def test_health_and_version(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert client.get("/version").json()["version"]


def test_request_id_header_on_every_response(client):
    r = client.get(f"{API}/leases")
    assert r.status_code == 200
    assert r.headers.get("X-Request-Id")


def test_lease_lifecycle(client, refs):
    lease = _create_lease(client, refs)
    lease_id = lease["lease_id"]
    assert lease["current_version"]["version_num"] == 0
    assert lease["current_version"]["effective_interval"]["literal"] == "[2024-01-01,2029-01-01)"
    assert lease["current_version"]["created_by"] == "user-1"

    r = client.post(f"{API}/leases/{lease_id}/versions", json={"effective_interval": "[2029-01-01,2031-01-01)"})
    assert r.status_code == 201
    assert r.json()["version_num"] == 1
    assert r.json()["is_current"] is True

    current = client.get(f"{API}/leases/{lease_id}/versions/current").json()
    assert current["version_num"] == 1

    history = client.get(f"{API}/leases/{lease_id}/versions").json()
    assert [v["version_num"] for v in history["data"]] == [0, 1]
    assert [v["is_current"] for v in history["data"]] == [False, True]

    version_id = history["data"][0]["lease_version_id"]
    assert client.get(f"{API}/lease-versions/{version_id}").json()["version_num"] == 0

    r = client.patch(f"{API}/leases/{lease_id}", json={"execution_date": "2023-11-01"})
    assert r.status_code == 200
    assert r.json()["execution_date"] == "2023-11-01"

    r = client.delete(f"{API}/leases/{lease_id}")
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "LEASE_HAS_VERSIONS"


def test_overlapping_amendment_returns_409_naming_the_version(client, refs):
    lease = _create_lease(client, refs)
    r = client.post(
        f"{API}/leases/{lease['lease_id']}/versions",
        json={"effective_interval": "[2026-01-01,2031-01-01)"},
    )
    assert r.status_code == 409
    error = r.json()["error"]
    assert error["code"] == "INTERVAL_OVERLAP"
    assert error["details"][0]["conflicting_id"] == lease["current_version"]["lease_version_id"]
    assert error["details"][0]["conflicting_interval"] == "[2024-01-01,2029-01-01)"
    assert error["request_id"] == r.headers["X-Request-Id"]


def test_malformed_interval_is_a_400(client, refs):
    lease = _create_lease(client, refs)
    r = client.post(f"{API}/leases/{lease['lease_id']}/versions", json={"effective_interval": "2024-01-01 to 2025"})
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "effective_interval"


def test_empty_interval_is_a_400(client, refs):
    lease = _create_lease(client, refs)
    r = client.post(f"{API}/leases/{lease['lease_id']}/versions", json={"effective_interval": "[2025-01-01,2025-01-01)"})
    assert r.status_code == 400


def test_unknown_lease_is_404(client):
    r = client.get(f"{API}/leases/nope")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"
    r = client.post(f"{API}/leases/nope/versions", json={"effective_interval": "[2024-01-01,2025-01-01)"})
    assert r.status_code == 404


def test_duplicate_lease_number_is_409(client, refs):
    _create_lease(client, refs)
    r = client.post(f"{API}/leases", json={**refs, "master_lease_num": "L-100"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "DUPLICATE_LEASE"


def test_rent_schedule_endpoints(client, refs):
    lease = _create_lease(client, refs)
    version_id = lease["current_version"]["lease_version_id"]
    body = {"lease_version_id": version_id, "period_daterange": "[2024-01-01,2025-01-01)", "amount": 6000, "basis": "month"}
    r = client.post(f"{API}/rent-schedules", json=body)
    assert r.status_code == 201
    created = r.json()
    assert created["basis"] == "MONTH"
    assert created["annualized_equiv"] == 72000

    clash = {**body, "period_daterange": "[2024-06-01,2025-06-01)"}
    r = client.post(f"{API}/rent-schedules", json=clash)
    assert r.status_code == 409
    assert r.json()["error"]["details"][0]["conflicting_id"] == created["rent_schedule_id"]

    r = client.post(f"{API}/rent-schedules", json={**body, "amount": -5})
    assert r.status_code == 400

    listed = client.get(f"{API}/rent-schedules", params={"lease_version_id": version_id}).json()
    assert listed["pagination"]["total"] == 1

    rid = created["rent_schedule_id"]
    r = client.patch(f"{API}/rent-schedules/{rid}", json={"amount": 6500})
    assert r.json()["monthly_equiv"] == 6500
    assert client.delete(f"{API}/rent-schedules/{rid}").json() == {"ok": True}
    assert client.get(f"{API}/rent-schedules/{rid}").status_code == 404


def test_option_exercise_endpoint(client, refs):
    lease = _create_lease(client, refs)
    version_id = lease["current_version"]["lease_version_id"]
    r = client.post(
        f"{API}/options",
        json={"lease_version_id": version_id, "option_type": "renewal", "window_interval": "[2028-01-01,2028-07-01)"},
    )
    assert r.status_code == 201
    option_id = r.json()["option_id"]

    r = client.post(f"{API}/options/{option_id}/exercise", json={"exercised_date": "2028-02-01"})
    assert r.status_code == 200
    assert r.json()["exercised"] is True
    assert r.json()["exercised_date"] == "2028-02-01"

    r = client.post(f"{API}/options/{option_id}/exercise")
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "OPTION_ALREADY_EXERCISED"


def test_opex_pass_through_endpoints(client, refs):
    lease = _create_lease(client, refs)
    version_id = lease["current_version"]["lease_version_id"]
    body = {"lease_version_id": version_id, "method": "expense_stop", "stop_amount": "12.50", "gross_up_pct": 95}
    r = client.post(f"{API}/opex-pass-throughs", json=body, headers={"X-Actor-Id": "user-1"})
    assert r.status_code == 201, r.text
    created = r.json()
    assert created["method"] == "EXPENSE_STOP"
    assert created["stop_amount"] == 12.5

    assert client.post(f"{API}/opex-pass-throughs", json={**body, "gross_up_pct": 120}).status_code == 400
    r = client.post(f"{API}/opex-pass-throughs", json={**body, "lease_version_id": "missing"})
    assert r.json()["error"]["code"] == "INVALID_REFERENCE"

    listed = client.get(f"{API}/opex-pass-throughs", params={"method": "expense_stop"}).json()
    assert [o["opex_id"] for o in listed["data"]] == [created["opex_id"]]

    summary = client.get(f"{API}/reports/opex-summary", params={"property_id": refs["property_id"]}).json()
    assert summary["data"][0]["opex_id"] == created["opex_id"]
    assert summary["data"][0]["master_lease_num"] == "L-100"

    oid = created["opex_id"]
    r = client.patch(f"{API}/opex-pass-throughs/{oid}", json={"method": "NNN", "stop_amount": None})
    assert r.json()["method"] == "NNN"
    assert r.json()["stop_amount"] is None
    assert client.delete(f"{API}/opex-pass-throughs/{oid}").json() == {"ok": True}
    assert client.get(f"{API}/opex-pass-throughs/{oid}").status_code == 404


def test_critical_date_endpoints(client, refs):
    lease = _create_lease(client, refs)
    r = client.post(
        f"{API}/critical-dates",
        json={"lease_id": lease["lease_id"], "kind": "expiration", "date_value": "2028-06-30"},
    )
    assert r.status_code == 201
    cd_id = r.json()["critical_date_id"]

    got = client.get(f"{API}/leases/{lease['lease_id']}").json()
    assert got["expiration_date"] == "2028-06-30"

    r = client.post(f"{API}/critical-dates", json={"lease_id": "nope", "kind": "NOTICE", "date_value": "2028-01-01"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_REFERENCE"

    r = client.patch(f"{API}/critical-dates/{cd_id}", json={"date_value": "2028-09-30"})
    assert r.json()["date_value"] == "2028-09-30"
    assert client.delete(f"{API}/critical-dates/{cd_id}").status_code == 200


def test_batch_endpoint_reports_every_record(client, refs):
    records = [
        {**refs, "master_lease_num": "B-1"},
        {**refs, "master_lease_num": "B-2", "landlord_id": "missing"},
    ]
    r = client.post(f"{API}/batch/leases", json={"records": records})
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "BATCH_FAILED"
    report = error["report"]
    assert report["successful"] == 0
    assert report["failed"] == 2
    assert [res["error"]["code"] for res in report["results"]] == ["ROLLED_BACK", "INVALID_REFERENCE"]
    assert client.get(f"{API}/leases").json()["pagination"]["total"] == 0

    r = client.post(f"{API}/batch/leases", json={"records": records[:1]})
    assert r.status_code == 200
    assert r.json()["successful"] == 1


def test_batch_endpoint_rejects_bad_envelopes(client):
    assert client.post(f"{API}/batch/leases", json={"rows": []}).status_code == 400
    assert client.post(f"{API}/batch/leases", json={"records": []}).status_code == 400
    assert client.post(f"{API}/batch/widgets", json={"records": [{}]}).status_code == 400


def test_list_query_validation(client):
    r = client.get(f"{API}/leases", params={"order": "sideways"})
    assert r.status_code == 400
    r = client.get(f"{API}/leases", params={"limit": 0})
    assert r.status_code == 400
    r = client.get(f"{API}/leases", params={"sort_by": "password"})
    assert r.status_code == 400


def test_reports_endpoints(client, refs):
    lease = _create_lease(client, refs)
    r = client.get(f"{API}/reports/expirations", params={"as_of": "2026-06-01"})
    assert r.status_code == 200
    body = r.json()
    assert body["as_of"] == "2026-06-01"
    assert body["data"][0]["lease_id"] == lease["lease_id"]
    assert body["data"][0]["expiration_date"] == "2028-12-31"

    for path in ("rent-roll", "options", "free-rent", "ti-allowances", "critical-dates", "amendments", "opex-summary"):
        assert client.get(f"{API}/reports/{path}").status_code == 200

    assert client.get(f"{API}/reports/critical-dates", params={"days": -5}).status_code == 400
