from datetime import timedelta

from conftest import auth, make_user, run
from claimflow.api.v1 import auth as auth_routes
from claimflow.core.security import REFRESH_COOKIE, create_access_token, create_jwt, find_refresh_token


def _login(client, email, password="secret123"):
    return client.post("/api/v1/auth/token", json={"email": email, "password": password})


def test_login_returns_tokens_and_sets_cookie(client, db):
    make_user(db, "employee", email="emp@claimflow.io")
    r = _login(client, "emp@claimflow.io")
    assert r.status_code == 200
    body = r.json()
    assert body["user"]["email"] == "emp@claimflow.io"
    assert body["access_token"]
    assert "." in body["refresh_token"]
    assert REFRESH_COOKIE in r.headers.get("set-cookie", "")
    stored = run(db["refresh_tokens"].find_one({}))
    assert stored["token_hash"] != body["refresh_token"]


def test_login_rejects_bad_password_and_inactive_user(client, db):
    make_user(db, "employee", email="emp@claimflow.io")
    make_user(db, "employee", email="gone@claimflow.io", is_active=False)
    assert _login(client, "emp@claimflow.io", "wrong").status_code == 401
    assert _login(client, "gone@claimflow.io").status_code == 401


def test_me_requires_valid_access_token(client, db):
    user = make_user(db, "employee")
    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401
    expired = create_access_token(user["_id"], timedelta(seconds=-5))
    r = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Token expired"
    wrong_type = create_jwt({"sub": str(user["_id"]), "type": "refresh"})
    assert client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {wrong_type}"}).status_code == 401
    me = client.get("/api/v1/auth/me", headers=auth(user))
    assert me.status_code == 200
    assert me.json()["id"] == str(user["_id"])


def test_refresh_rotates_token(client, db):
    make_user(db, "employee", email="emp@claimflow.io")
    first = _login(client, "emp@claimflow.io").json()["refresh_token"]
    r = client.post("/api/v1/auth/refresh", json={"refresh_token": first})
    assert r.status_code == 200
    second = r.json()["refresh_token"]
    assert second != first
    # The spent token cannot be used again
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": first}).status_code == 401
    docs = run(db["refresh_tokens"].find({}).to_list(None))
    assert len({d["family"] for d in docs}) == 1


def test_refresh_token_is_spent_atomically(client, db, monkeypatch):
    make_user(db, "employee", email="emp@claimflow.io")
    raw = _login(client, "emp@claimflow.io").json()["refresh_token"]
    # Snapshot as seen by a concurrent request that read the token before it was spent
    stale = run(find_refresh_token(db, raw))
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": raw}).status_code == 200

    async def stale_lookup(db, raw):
        return stale

    monkeypatch.setattr(auth_routes, "find_refresh_token", stale_lookup)
    r = client.post("/api/v1/auth/refresh", json={"refresh_token": raw})
    assert r.status_code == 401
    live = run(db["refresh_tokens"].count_documents({"is_revoked": False}))
    assert live == 1


def test_refresh_without_token_is_unauthorized(client, db):
    client.cookies.clear()
    assert client.post("/api/v1/auth/refresh", json={}).status_code == 401


def test_logout_revokes_refresh_family(client, db):
    make_user(db, "employee", email="emp@claimflow.io")
    token = _login(client, "emp@claimflow.io").json()["refresh_token"]
    r = client.post("/api/v1/auth/logout", json={"refresh_token": token})
    assert r.status_code == 200
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": token}).status_code == 401


def test_admin_revokes_user_sessions(client, db):
    admin = make_user(db, "admin")
    emp = make_user(db, "employee", email="emp@claimflow.io")
    token = _login(client, "emp@claimflow.io").json()["refresh_token"]
    assert client.post(f"/api/v1/auth/revoke/{emp['_id']}", headers=auth(emp)).status_code == 403
    r = client.post(f"/api/v1/auth/revoke/{emp['_id']}", headers=auth(admin))
    assert r.status_code == 200
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": token}).status_code == 401


def test_health(client, db):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").status_code == 200
