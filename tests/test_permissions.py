"""Tests for permissions, roles and user-role assignment."""
from conftest import login, make_member


def _permission_id(api, key):
    rows = api.get("/admin/permissions", query_string={"name": key, "limit": 100}).json["data"]
    return next(p["id"] for p in rows if p["key"] == key)


def test_permission_crud(api):
    r = api.post("/admin/permissions", json={"key": "reports.export", "name": "Reports: export"})
    assert r.status_code == 201
    perm_id = r.json["permission_id"]

    assert api.post("/admin/permissions", json={"key": "reports.export"}).status_code == 409
    assert api.post("/admin/permissions", json={"key": "Bad Key!"}).status_code == 400
    assert api.post("/admin/permissions", json={}).status_code == 400

    r = api.put(f"/admin/permissions/{perm_id}", json={"name": "Reports: export CSV"})
    assert r.status_code == 200
    data = api.get(f"/admin/permissions/{perm_id}").json["data"]
    assert data == {**data, "key": "reports.export", "name": "Reports: export CSV", "roles": []}

    assert api.delete(f"/admin/permissions/{perm_id}").status_code == 200
    assert api.get(f"/admin/permissions/{perm_id}").status_code == 404


def test_permission_assigned_to_role_cannot_be_deleted(api):
    perm_id = _permission_id(api, "members.view")
    data = api.get(f"/admin/permissions/{perm_id}").json["data"]
    assert [r["key"] for r in data["roles"]] == ["admin"]
    assert api.delete(f"/admin/permissions/{perm_id}").status_code == 409


def test_role_grants_access_to_user(api, app):
    make_member(api, "Tina", "Osei", username="tina")
    member_api = login(app.test_client(), "tina", "pw")
    user_id = member_api.get("/auth/me").json["user"]["id"]
    assert member_api.get("/admin/members").status_code == 403

    r = api.post("/admin/roles", json={"key": "secretary", "name": "Church Secretary"})
    assert r.status_code == 201
    role_id = r.json["role_id"]
    assert api.post("/admin/roles", json={"key": "secretary"}).status_code == 409

    perm_id = _permission_id(api, "members.view")
    assert api.post(f"/admin/roles/{role_id}/permissions", json={"permission_id": perm_id}).status_code == 201
    assert api.post(f"/admin/roles/{role_id}/permissions", json={"permission_id": perm_id}).status_code == 409

    assert api.post(f"/admin/users/{user_id}/roles", json={"role_id": role_id}).status_code == 201
    assert api.post(f"/admin/users/{user_id}/roles", json={"role_id": role_id}).status_code == 409
    assert member_api.get("/admin/members").status_code == 200

    roles = {r["key"]: r for r in api.get("/admin/roles").json["data"]}
    assert roles["secretary"]["permissions"] == ["members.view"]
    assert roles["secretary"]["user_count"] == 1

    assert api.delete(f"/admin/roles/{role_id}/permissions/{perm_id}").status_code == 200
    assert api.delete(f"/admin/roles/{role_id}/permissions/{perm_id}").status_code == 400
    assert member_api.get("/admin/members").status_code == 403

    assert api.delete(f"/admin/users/{user_id}/roles/{role_id}").status_code == 200
    assert api.delete(f"/admin/users/{user_id}/roles/{role_id}").status_code == 400


def test_role_key_format(api):
    assert api.post("/admin/roles", json={"key": "Has Spaces"}).status_code == 400
    assert api.post("/admin/users/999/roles", json={"role_id": 1}).status_code == 400
