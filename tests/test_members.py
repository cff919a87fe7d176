"""Tests for the Members module."""
from io import BytesIO

from conftest import login, make_member


def test_members_list_requires_auth(client):
    r = client.get("/admin/members")
    assert r.status_code == 401


def test_register_creates_member_account_and_primary_phone(api, app):
    member_id = make_member(api, "Ama", "Owusu", username="ama", phone_numbers=["0241234567", "+233201112222"])

    r = api.get(f"/admin/members/{member_id}")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["full_name"] == "Ama Owusu"
    assert data["membership_status"] == "Active"
    assert data["occupation"] == "Not Applicable"
    phones = {p["phone_number"]: p["is_primary"] for p in data["phones"]}
    assert phones == {"0241234567": True, "+233201112222": False}

    # The registered account can sign in and is linked to the member
    member_api = login(app.test_client(), "ama", "pw")
    assert member_api.get("/auth/me").json["user"]["member_id"] == member_id


def test_register_validation_errors(api):
    r = api.post("/admin/members", json={"first_name": "", "email_address": "bad", "gender": "X"})
    assert r.status_code == 400
    errors = r.json["errors"]
    assert "First name is required." in errors
    assert "Family name is required." in errors
    assert "Email address is invalid." in errors
    assert "Username is required." in errors
    assert any(e.startswith("Invalid gender") for e in errors)


def test_register_duplicate_username_and_phone(api):
    make_member(api, "Kwame", username="kwame", phone_numbers=["0240000001"])
    r = api.post(
        "/admin/members",
        json={"first_name": "K", "family_name": "B", "email_address": "k@example.com", "username": "kwame", "password": "x"},
    )
    assert r.status_code == 409
    r = api.post(
        "/admin/members",
        json={
            "first_name": "K",
            "family_name": "B",
            "email_address": "k@example.com",
            "username": "other",
            "password": "x",
            "phone_numbers": ["0240000001"],
        },
    )
    assert r.status_code == 409
    assert "0240000001" in r.json["message"]


def test_update_member_records_changes(api):
    member_id = make_member(api, "Efua", "Boateng")
    r = api.put(
        f"/admin/members/{member_id}",
        json={"first_name": "Efua", "family_name": "Asante", "email_address": "efua@example.com", "membership_status": "Inactive"},
    )
    assert r.status_code == 200
    data = api.get(f"/admin/members/{member_id}").json["data"]
    assert data["family_name"] == "Asante"
    assert data["membership_status"] == "Inactive"

    logs = api.get(f"/admin/audit/Member/{member_id}").json["data"]
    update = next(l for l in logs if l["action"] == "member.update")
    assert update["changes"]["family_name"] == {"old": "Boateng", "new": "Asante"}


def test_list_members_filters_and_pagination(api):
    for i in range(3):
        make_member(api, f"Yaw{i}", "Darko")
    make_member(api, "Abena", "Sarpong")

    r = api.get("/admin/members", query_string={"name": "darko", "limit": 2})
    assert r.status_code == 200
    assert r.json["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert len(r.json["data"]) == 2

    r = api.get("/admin/members", query_string={"name": "darko", "limit": 2, "page": 2})
    assert len(r.json["data"]) == 1


def test_soft_delete_hides_member_and_deactivates_login(api, app):
    member_id = make_member(api, "Akos", "Appiah", username="akos")
    assert api.delete(f"/admin/members/{member_id}").status_code == 200

    assert api.get(f"/admin/members/{member_id}").status_code == 404
    assert api.get("/admin/members", query_string={"name": "Akos"}).json["pagination"]["total"] == 0

    r = app.test_client().post("/auth/login", json={"username": "akos", "password": "pw"})
    assert r.status_code == 401


def test_delete_blocked_for_family_head(api):
    head_id = make_member(api, "Nana", "Ofori")
    r = api.post("/admin/families", json={"name": "Ofori Family", "head_id": head_id, "branch_id": 1})
    assert r.status_code == 201
    r = api.delete(f"/admin/members/{head_id}")
    assert r.status_code == 409


def test_delete_blocked_for_group_leader(api):
    leader_id = make_member(api, "Yaw", "Boateng")
    successor_id = make_member(api, "Kofi", "Boateng")
    group = {"name": "Youth", "leader_id": leader_id, "type_id": 1}
    group_id = api.post("/admin/groups", json=group).json["group_id"]

    r = api.delete(f"/admin/members/{leader_id}")
    assert r.status_code == 409
    assert r.json["message"] == "Member leads a group; assign a new leader first."
    assert api.get(f"/admin/members/{leader_id}").status_code == 200

    assert api.put(f"/admin/groups/{group_id}", json={**group, "leader_id": successor_id}).status_code == 200
    assert api.delete(f"/admin/members/{leader_id}").status_code == 200


def test_phone_crud_and_primary_rules(api):
    member_id = make_member(api, "Esi", "Quaye")
    r = api.post(f"/admin/members/{member_id}/phones", json={"phone_number": "0551234567", "phone_type": "Mobile"})
    assert r.status_code == 201
    first_id = r.json["phone_id"]

    r = api.post(f"/admin/members/{member_id}/phones", json={"phone_number": "0557654321", "phone_type": "Work"})
    second_id = r.json["phone_id"]

    phones = {p["id"]: p for p in api.get(f"/admin/members/{member_id}/phones").json["data"]}
    assert phones[first_id]["is_primary"] is True
    assert phones[second_id]["is_primary"] is False

    # The primary phone cannot be removed
    assert api.delete(f"/admin/members/phones/{first_id}").status_code == 409

    assert api.put(f"/admin/members/phones/{second_id}", json={"is_primary": True}).status_code == 200
    phones = {p["id"]: p for p in api.get(f"/admin/members/{member_id}/phones").json["data"]}
    assert phones[first_id]["is_primary"] is False
    assert phones[second_id]["is_primary"] is True

    assert api.delete(f"/admin/members/phones/{first_id}").status_code == 200

    r = api.post(f"/admin/members/{member_id}/phones", json={"phone_number": "12", "phone_type": "Fax"})
    assert r.status_code == 400


def test_photo_upload_and_download(api):
    member_id = make_member(api, "Kojo", "Antwi")
    r = api.post(
        f"/admin/members/{member_id}/photo",
        data={"file": (BytesIO(b"\x89PNG fake"), "face.png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    assert r.json["photo_storage_key"].endswith("/face.png")

    r = api.get(f"/admin/members/{member_id}/photo")
    assert r.status_code == 200
    assert r.data == b"\x89PNG fake"

    r = api.post(
        f"/admin/members/{member_id}/photo",
        data={"file": (BytesIO(b"MZ"), "virus.exe")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
