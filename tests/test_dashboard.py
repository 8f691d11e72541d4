from datetime import date

from claimflow.api.v1 import dashboard as dashboard_routes, leaves as leave_routes
from claimflow.services.stats import utc_today

from conftest import EXECUTIVE_EMAIL, auth, make_user, meal_claim


def test_dashboard_summary_per_role(client, db):
    sup = make_user(db, "supervisor")
    emp = make_user(db, "employee", assigned_supervisor1=sup["_id"])
    fin = make_user(db, "finance_manager")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)

    first = client.post("/api/v1/claims", json=meal_claim(), headers=auth(emp)).json()["id"]
    client.post("/api/v1/claims", json=meal_claim(), headers=auth(emp))
    client.post(f"/api/v1/claims/{first}/finance-approve", json={"action": "approve"}, headers=auth(fin))
    today = utc_today().isoformat()
    client.post(
        "/api/v1/leaves",
        json={"type": "WFH", "start_date": today, "end_date": today},
        headers=auth(emp),
    )

    mine = client.get("/api/v1/dashboard/summary", headers=auth(emp)).json()
    assert mine["role"] == "employee"
    assert mine["claims"] == {"total": 2, "pending": 1, "approved": 1, "rejected": 0, "total_amount": 600}
    assert mine["pending"] == {"claims_to_approve": 0, "claims_to_pay": 0, "leaves_to_approve": 0}

    assert client.get("/api/v1/dashboard/summary", headers=auth(sup)).json()["pending"]["claims_to_approve"] == 1
    assert client.get("/api/v1/dashboard/summary", headers=auth(fin)).json()["pending"]["claims_to_approve"] == 1

    board = client.get("/api/v1/dashboard/summary", headers=auth(exe)).json()
    assert board["is_executive"] is True
    assert board["pending"] == {"claims_to_approve": 1, "claims_to_pay": 0, "leaves_to_approve": 1}
    assert board["leaves_on_leave_today"] == 0


def test_dashboard_and_today_view_share_the_utc_day(client, db, monkeypatch):
    emp = make_user(db, "employee", name="Away")
    exe = make_user(db, "admin", email=EXECUTIVE_EMAIL)
    r = client.post(
        "/api/v1/leaves",
        json={"type": "Planned Leave", "start_date": "2025-03-10", "end_date": "2025-03-10", "reason": "Trip"},
        headers=auth(emp),
    )
    leave_id = r.json()["leave"]["id"]
    client.post(f"/api/v1/leaves/{leave_id}/approve", json={"action": "approve"}, headers=auth(exe))

    for module in (dashboard_routes, leave_routes):
        monkeypatch.setattr(module, "utc_today", lambda: date(2025, 3, 10))
    assert client.get("/api/v1/dashboard/summary", headers=auth(exe)).json()["leaves_on_leave_today"] == 1
    today = client.get("/api/v1/leaves/today", headers=auth(emp)).json()
    assert today["date"] == "2025-03-10"
    assert [e["employee"]["name"] for e in today["employees"]] == ["Away"]

    for module in (dashboard_routes, leave_routes):
        monkeypatch.setattr(module, "utc_today", lambda: date(2025, 3, 11))
    assert client.get("/api/v1/dashboard/summary", headers=auth(exe)).json()["leaves_on_leave_today"] == 0
    assert client.get("/api/v1/leaves/today", headers=auth(emp)).json()["employees"] == []
