from conftest import login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_login_and_admin_access(client):
    # Anonymous is rejected
    r = client.get("/admin/")
    assert r.status_code == 401
    assert r.json["status"] == "error"

    api = login(client)
    r = api.get("/admin/")
    assert r.status_code == 200
    assert r.json["data"]["db_connected"] is True


def test_login_bad_password(client):
    r = client.post("/auth/login", json={"username": "admin", "password": "nope"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid credentials."


def test_me_lists_permissions(api):
    r = api.get("/auth/me")
    assert r.status_code == 200
    user = r.json["user"]
    assert user["username"] == "admin"
    assert "admin" in user["roles"]
    assert "members.view" in user["permissions"]


def test_write_requires_csrf_token(api):
    r = api.client.post("/admin/branches", json={"name": "East"})
    assert r.status_code == 400
    assert "CSRF" in r.json["message"]

    r = api.post("/admin/branches", json={"name": "East"})
    assert r.status_code == 201


def test_missing_permission_is_forbidden(api, app):
    from conftest import make_member

    make_member(api, "Kofi", username="kofi")
    member_api = login(app.test_client(), "kofi", "pw")
    r = member_api.get("/admin/members")
    assert r.status_code == 403
    assert r.json["code"] == 403


def test_login_rate_limited_after_repeated_failures(client):
    for _ in range(5):
        r = client.post("/auth/login", json={"username": "admin", "password": "wrong"})
        assert r.status_code == 401
    r = client.post("/auth/login", json={"username": "admin", "password": "pw"})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0
    assert r.json["retry_after"] > 0


def test_logout_clears_session(api):
    r = api.post("/auth/logout")
    assert r.status_code == 200
    assert api.get("/auth/me").status_code == 401


def test_branches_unique(api):
    assert api.post("/admin/branches", json={"name": "West"}).status_code == 201
    r = api.post("/admin/branches", json={"name": "West"})
    assert r.status_code == 409
    names = [b["name"] for b in api.get("/admin/branches").json["data"]]
    assert names == ["Main", "West"]
