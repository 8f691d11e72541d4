from claimflow.services.stats import utc_today

from conftest import EXECUTIVE_EMAIL, auth, make_user, run


def _leave(client, user, **overrides):
    payload = {"type": "Planned Leave", "start_date": "2025-03-10", "end_date": "2025-03-12", "reason": "Family trip"}
    payload.update(overrides)
    return client.post("/api/v1/leaves", json=payload, headers=auth(user))


def test_create_leave(client, db):
    emp = make_user(db, "employee", name="Asha")
    r = _leave(client, emp)
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Leave request submitted successfully"
    leave = body["leave"]
    assert leave["status"] == "submitted"
    assert leave["duration_in_days"] == 3
    assert leave["leave_id"].endswith("_00287")
    assert leave["employee"]["name"] == "Asha"
    assert leave["hours"] is None


def test_overlapping_leave_is_rejected(client, db):
    emp = make_user(db, "employee")
    assert _leave(client, emp).status_code == 201
    r = _leave(client, emp, start_date="2025-03-12", end_date="2025-03-14")
    assert r.status_code == 400
    assert _leave(client, emp, start_date="2025-03-13", end_date="2025-03-14").status_code == 201


def test_permission_needs_hours(client, db):
    emp = make_user(db, "employee")
    assert _leave(client, emp, type="Permission", start_date="2025-04-01", end_date="2025-04-01").status_code == 422
    r = _leave(client, emp, type="Permission", start_date="2025-04-01", end_date="2025-04-01", hours=2)
    leave = r.json()["leave"]
    assert leave["is_full_day"] is False
    assert leave["duration_in_days"] == 0.25


def test_end_before_start_is_invalid(client, db):
    emp = make_user(db, "employee")
    assert _leave(client, emp, start_date="2025-03-12", end_date="2025-03-10").status_code == 422


def test_only_executives_review_leaves(client, db):
    emp = make_user(db, "employee", email="worker@claimflow.io")
    admin = make_user(db, "admin")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    leave_id = _leave(client, emp).json()["leave"]["id"]

    assert client.get("/api/v1/leaves/pending", headers=auth(admin)).status_code == 403
    pending = client.get("/api/v1/leaves/pending", headers=auth(exe)).json()
    assert [p["id"] for p in pending] == [leave_id]

    assert client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "approve"}, headers=auth(admin)).status_code == 403
    r = client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "approve", "notes": "Enjoy"}, headers=auth(exe))
    assert r.status_code == 200
    assert r.json()["message"] == "Leave approved successfully"
    assert r.json()["leave"]["approval"]["approved_by"] == str(exe["_id"])

    again = client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "approve"}, headers=auth(exe))
    assert again.status_code == 400


def test_rejecting_leave_requires_reason(client, db):
    emp = make_user(db, "employee")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    leave_id = _leave(client, emp).json()["leave"]["id"]
    assert client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "reject"}, headers=auth(exe)).status_code == 400
    r = client.post(
        f"/api/v1/leaves/{leave_id}/approve",
        json={"action": "reject", "rejection_reason": "Release week"},
        headers=auth(exe),
    )
    assert r.json()["leave"]["status"] == "rejected"
    assert r.json()["leave"]["approval"]["rejection_reason"] == "Release week"
    # A rejected request no longer blocks the dates
    assert _leave(client, emp).status_code == 201


def test_list_leaves_with_year_summary(client, db):
    emp = make_user(db, "employee")
    other = make_user(db, "employee")
    _leave(client, emp)
    _leave(client, emp, type="WFH", start_date="2025-05-02", end_date="2025-05-02")
    _leave(client, emp, type="Permission", start_date="2025-06-02", end_date="2025-06-02", hours=3)
    _leave(client, other)

    r = client.get("/api/v1/leaves", params={"year": 2025}, headers=auth(emp))
    body = r.json()
    assert body["pagination"]["total"] == 3
    summary = body["year_summary"]
    assert summary["planned_leave_days"] == 3
    assert summary["wfh_days"] == 1
    assert summary["permission_hours"] == 3
    assert summary["total_leave_days"] == 4.38

    assert client.get("/api/v1/leaves", params={"employee_id": str(other["_id"])}, headers=auth(emp)).status_code == 403


def test_owner_edits_and_cancels_pending_leave(client, db):
    emp = make_user(db, "employee")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    leave_id = _leave(client, emp).json()["leave"]["id"]

    r = client.patch(f"/api/v1/leaves/{leave_id}", json={"end_date": "2025-03-11"}, headers=auth(emp))
    assert r.status_code == 200
    assert r.json()["leave"]["duration_in_days"] == 2

    bad = client.patch(f"/api/v1/leaves/{leave_id}", json={"type": "Permission"}, headers=auth(emp))
    assert bad.status_code == 400

    client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "approve"}, headers=auth(exe))
    assert client.patch(f"/api/v1/leaves/{leave_id}", json={"reason": "x"}, headers=auth(emp)).status_code == 400
    assert client.delete(f"/api/v1/leaves/{leave_id}", headers=auth(emp)).status_code == 400
    assert client.delete(f"/api/v1/leaves/{leave_id}", headers=auth(exe)).status_code == 200


def test_other_employee_cannot_touch_leave(client, db):
    emp = make_user(db, "employee")
    other = make_user(db, "employee")
    leave_id = _leave(client, emp).json()["leave"]["id"]
    assert client.patch(f"/api/v1/leaves/{leave_id}", json={"reason": "x"}, headers=auth(other)).status_code == 403
    assert client.delete(f"/api/v1/leaves/{leave_id}", headers=auth(other)).status_code == 403


def test_today_and_range(client, db):
    emp = make_user(db, "employee", name="Away")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    today = utc_today().isoformat()
    leave_id = _leave(client, emp, start_date=today, end_date=today).json()["leave"]["id"]

    assert client.get("/api/v1/leaves/today", headers=auth(emp)).json()["employees"] == []
    client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "approve"}, headers=auth(exe))

    on_leave = client.get("/api/v1/leaves/today", headers=auth(emp)).json()["employees"]
    assert [e["employee"]["name"] for e in on_leave] == ["Away"]
    assert on_leave[0]["leave_type"] == "Planned Leave"

    r = client.get("/api/v1/leaves/range", params={"start_date": today, "end_date": today}, headers=auth(emp))
    assert [leave["id"] for leave in r.json()["leaves"]] == [leave_id]
    bad = client.get("/api/v1/leaves/range", params={"start_date": today, "end_date": "2000-01-01"}, headers=auth(emp))
    assert bad.status_code == 400


def test_analytics_by_month(client, db):
    emp = make_user(db, "employee", department="Sales")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    _leave(client, emp)
    _leave(client, emp, type="OD", start_date="2025-03-20", end_date="2025-03-20")
    _leave(client, emp, start_date="2025-04-20", end_date="2025-04-21")

    assert client.get("/api/v1/leaves/analytics", headers=auth(emp)).status_code == 403
    r = client.get("/api/v1/leaves/analytics", params={"period": "month", "year": 2025, "month": 3}, headers=auth(exe))
    body = r.json()
    assert body["period"] == "2025-03"
    summary = body["summary"]
    assert summary["total_leave_days"] == 4
    assert summary["leaves_by_type"] == {"Planned Leave": 3, "OD": 1}
    assert summary["leaves_by_department"] == {"Sales": 4}
    assert summary["employee_summaries"][0]["employee"]["id"] == str(emp["_id"])


def test_bulk_upload_reports_each_row(client, db):
    make_user(db, "employee", email="one@claimflow.io")
    two = make_user(db, "employee", email="two@claimflow.io")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    _leave(client, two)
    rows = [
        {"employee_email": "One@claimflow.io", "leave_type": "WFH", "start_date": "2025-03-10", "end_date": "2025-03-10"},
        {"employee_email": "nobody@claimflow.io", "leave_type": "WFH", "start_date": "2025-03-10", "end_date": "2025-03-10"},
        {"employee_email": "two@claimflow.io", "leave_type": "WFH", "start_date": "2025-03-11", "end_date": "2025-03-11"},
        {"employee_email": "one@claimflow.io", "leave_type": "Holiday", "start_date": "2025-03-12", "end_date": "2025-03-12"},
        {"employee_email": "one@claimflow.io", "start_date": "2025-03-12"},
    ]
    assert client.post("/api/v1/leaves/bulk", json={"leaves": rows}, headers=auth(two)).status_code == 403

    r = client.post("/api/v1/leaves/bulk", json={"leaves": rows}, headers=auth(exe))
    assert r.status_code == 200
    body = r.json()
    assert body["summary"] == {"total": 5, "successful": 1, "failed": 4}
    results = body["results"]
    assert results[0]["success"] is True
    assert results[1]["error"] == "Employee not found"
    assert results[2]["error"] == "Overlapping leave already exists"
    assert results[3]["success"] is False
    assert results[4]["error"] == "Missing required fields"

    created = run(db["leaves"].find_one({"leave_id": results[0]["leave_id"]}))
    assert created["status"] == "approved"
    assert run(db["audit_logs"].count_documents({"action": "bulk_upload"})) == 1


def test_bulk_upload_is_capped(client, db):
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    rows = [{"employee_email": "a@claimflow.io"}] * 101
    assert client.post("/api/v1/leaves/bulk", json={"leaves": rows}, headers=auth(exe)).status_code == 422
