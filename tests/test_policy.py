from conftest import auth, make_user, run


def test_get_policy_returns_defaults(client, db):
    emp = make_user(db, "employee")
    r = client.get("/api/v1/policy", headers=auth(emp))
    assert r.status_code == 200
    policy = r.json()
    assert policy["approval_mode"] == "both"
    assert policy["allowed_file_types"] == ["pdf", "jpg", "jpeg", "png"]
    assert policy["meal_caps"]["A"]["dinner"] == 500
    assert policy["rules_behavior"] == {"missing_documents": "hard", "cap_exceeded": "soft"}
    assert policy["updated_by"] is None


def test_only_admin_updates_policy(client, db):
    admin = make_user(db, "admin")
    fin = make_user(db, "finance_manager")
    assert client.patch("/api/v1/policy", json={"mileage_rate": 15}, headers=auth(fin)).status_code == 403

    r = client.patch(
        "/api/v1/policy",
        json={"mileage_rate": 15, "allowed_file_types": [".PDF", "png"]},
        headers=auth(admin),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["mileage_rate"] == 15
    assert body["allowed_file_types"] == ["pdf", "png"]
    assert body["updated_by"] == str(admin["_id"])
    # Untouched settings keep their defaults
    assert body["lodging_caps"] == {"A": 4000, "B": 3000, "C": 2000}

    log = run(db["audit_logs"].find_one({"resource": "policy"}))
    assert log["details"] == {"mileage_rate": 15, "allowed_file_types": ["pdf", "png"]}


def test_policy_update_validation(client, db):
    admin = make_user(db, "admin")
    assert client.patch("/api/v1/policy", json={}, headers=auth(admin)).status_code == 400
    assert client.patch("/api/v1/policy", json={"claim_retention_days": 5}, headers=auth(admin)).status_code == 422
    assert client.patch("/api/v1/policy", json={"approval_mode": "all"}, headers=auth(admin)).status_code == 422
    r = client.patch("/api/v1/policy", json={"claim_categories": ["Travel & Lodging", "Parties"]}, headers=auth(admin))
    assert r.status_code == 400


def test_hard_caps_block_claims(client, db):
    admin = make_user(db, "admin")
    emp = make_user(db, "employee")
    client.patch("/api/v1/policy", json={"rules_behavior": {"cap_exceeded": "hard"}}, headers=auth(admin))
    r = client.post(
        "/api/v1/claims",
        json={
            "category": "Travel & Lodging",
            "business_unit": "General",
            "trip": {"purpose": "Offsite", "city_class": "C"},
            "line_items": [{
                "type": "lodging", "date": "2024-11-04", "amount": 6000, "check_in": "2024-11-04",
                "check_out": "2024-11-06", "nights": 2, "city": "Mysore",
            }],
        },
        headers=auth(emp),
    )
    assert r.status_code == 400
    assert [v["code"] for v in r.json()["detail"]["violations"]] == ["LODGING_CAP_EXCEEDED"]


def test_lookups(client, db):
    emp = make_user(db, "employee")
    categories = client.get("/api/v1/lookups/categories", headers=auth(emp)).json()
    assert categories[0]["name"] == "Travel & Lodging"
    types = client.get("/api/v1/lookups/line-item-types", headers=auth(emp)).json()
    assert {t["type"] for t in types} >= {"flight", "meal", "lodging"}
    assert "Permission" in client.get("/api/v1/lookups/leave-types", headers=auth(emp)).json()
    assert client.get("/api/v1/lookups/business-units", headers=auth(emp)).json() == ["Alliance", "Coinnovation", "General"]
    assert client.get("/api/v1/lookups/categories").status_code == 401
